from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone

from apps.core.models import MEAL_CHOICES, MessFacility, Student
from apps.inventory.models import Item


class Dish(models.Model):
	CATEGORY_CHOICES = [
		('MAIN', 'Main Course'),
		('SIDE', 'Side Dish'),
		('BREAD', 'Bread'),
		('RICE', 'Rice'),
		('DESSERT', 'Dessert'),
		('BEVERAGE', 'Beverage'),
		('SNACK', 'Snack'),
	]

	name = models.CharField(max_length=150, unique=True)
	category = models.CharField(max_length=10, choices=CATEGORY_CHOICES, default='MAIN')
	description = models.TextField(blank=True)
	cost_per_5_students = models.DecimalField(max_digits=10, decimal_places=2, default=0)
	is_active = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return self.name

	class Meta:
		db_table = 'dishes'
		verbose_name_plural = 'dishes'
		ordering = ['name']


class Recipe(models.Model):
	dish = models.ForeignKey(Dish, on_delete=models.CASCADE, related_name='recipes')
	item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='recipes')
	qty_per_5_students = models.DecimalField(max_digits=10, decimal_places=3)

	def __str__(self):
		return f"{self.dish.name}: {self.qty_per_5_students} {self.item.name}"

	class Meta:
		db_table = 'recipes'
		unique_together = ['dish', 'item']


class MealPlan(models.Model):
	DAY_CHOICES = [
		(0, 'Monday'),
		(1, 'Tuesday'),
		(2, 'Wednesday'),
		(3, 'Thursday'),
		(4, 'Friday'),
		(5, 'Saturday'),
		(6, 'Sunday'),
	]

	mess_facility = models.ForeignKey(MessFacility, on_delete=models.CASCADE, related_name='meal_plans')
	day = models.PositiveSmallIntegerField(choices=DAY_CHOICES, validators=[MaxValueValidator(6)])
	meal = models.CharField(max_length=10, choices=MEAL_CHOICES)
	planned_students = models.PositiveIntegerField(default=0)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.mess_facility.name} - {self.get_day_display()} {self.meal}"

	class Meta:
		db_table = 'meal_plans'
		unique_together = ['mess_facility', 'day', 'meal']
		ordering = ['mess_facility', 'day', 'meal']


class MealPlanDish(models.Model):
	meal_plan = models.ForeignKey(MealPlan, on_delete=models.CASCADE, related_name='dishes')
	dish = models.ForeignKey(Dish, on_delete=models.PROTECT, related_name='meal_plan_entries')
	position = models.PositiveSmallIntegerField(default=0, validators=[MinValueValidator(0)])
	is_main = models.BooleanField(default=False)

	class Meta:
		db_table = 'meal_plan_dishes'
		ordering = ['position', 'id']


class MealAttendance(models.Model):
	student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='attendance')
	meal_plan = models.ForeignKey(MealPlan, on_delete=models.CASCADE, related_name='attendance')
	attended_on = models.DateField(default=timezone.localdate)
	attended_at = models.DateTimeField(default=timezone.now)
	device_id = models.CharField(max_length=100, blank=True)

	def __str__(self):
		return f"{self.student.name} - {self.meal_plan} - {self.attended_on}"

	class Meta:
		db_table = 'meal_attendance'
		unique_together = ['student', 'meal_plan', 'attended_on']
