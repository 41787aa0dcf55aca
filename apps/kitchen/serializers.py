from decimal import Decimal
from rest_framework import serializers
from django.db import transaction
from apps.core.models import MEAL_CHOICES, MessFacility
from apps.inventory.models import Item
from .models import Dish, MealAttendance, MealPlan, MealPlanDish, Recipe
from .services import refresh_dish_cost


class RecipeSerializer(serializers.ModelSerializer):
	item_name = serializers.CharField(source='item.name', read_only=True)
	unit = serializers.CharField(source='item.unit.symbol', read_only=True)

	class Meta:
		model = Recipe
		fields = ['id', 'item', 'item_name', 'unit', 'qty_per_5_students']


class RecipeLineSerializer(serializers.Serializer):
	item = serializers.PrimaryKeyRelatedField(queryset=Item.objects.all())
	qty_per_5_students = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=Decimal('0.001'))


class DishSerializer(serializers.ModelSerializer):
	recipes = RecipeSerializer(many=True, read_only=True)
	ingredients = RecipeLineSerializer(many=True, write_only=True, required=False)

	class Meta:
		model = Dish
		fields = ['id', 'name', 'category', 'description', 'cost_per_5_students', 'is_active',
				  'recipes', 'ingredients', 'created_at']
		read_only_fields = ['cost_per_5_students', 'created_at']

	def validate_ingredients(self, value):
		item_ids = [line['item'].pk for line in value]
		if len(item_ids) != len(set(item_ids)):
			raise serializers.ValidationError('Each item may appear only once in a recipe')
		return value

	def _replace_recipes(self, dish, ingredients):
		dish.recipes.all().delete()
		Recipe.objects.bulk_create([
			Recipe(dish=dish, item=line['item'], qty_per_5_students=line['qty_per_5_students'])
			for line in ingredients
		])
		refresh_dish_cost(dish)

	def create(self, validated_data):
		ingredients = validated_data.pop('ingredients', [])
		with transaction.atomic():
			dish = Dish.objects.create(**validated_data)
			self._replace_recipes(dish, ingredients)
		return dish

	def update(self, instance, validated_data):
		ingredients = validated_data.pop('ingredients', None)
		with transaction.atomic():
			instance = super().update(instance, validated_data)
			if ingredients is not None:
				self._replace_recipes(instance, ingredients)
		return instance


class MealPlanDishSerializer(serializers.ModelSerializer):
	dish_name = serializers.CharField(source='dish.name', read_only=True)
	category = serializers.CharField(source='dish.category', read_only=True)

	class Meta:
		model = MealPlanDish
		fields = ['id', 'dish', 'dish_name', 'category', 'position', 'is_main']


class MealPlanSerializer(serializers.ModelSerializer):
	mess_facility_name = serializers.CharField(source='mess_facility.name', read_only=True)
	day_name = serializers.CharField(source='get_day_display', read_only=True)
	dishes = MealPlanDishSerializer(many=True, read_only=True)

	class Meta:
		model = MealPlan
		fields = ['id', 'mess_facility', 'mess_facility_name', 'day', 'day_name', 'meal',
				  'planned_students', 'dishes', 'updated_at']
		read_only_fields = fields


class PlanDishLineSerializer(serializers.Serializer):
	dish = serializers.PrimaryKeyRelatedField(queryset=Dish.objects.filter(is_active=True))
	position = serializers.IntegerField(min_value=0, required=False)
	is_main = serializers.BooleanField(default=False)


class MealPlanWriteSerializer(serializers.Serializer):
	messFacilityIds = serializers.PrimaryKeyRelatedField(
		queryset=MessFacility.objects.all(), many=True, allow_empty=False
	)
	day = serializers.ChoiceField(choices=MealPlan.DAY_CHOICES)
	meal = serializers.ChoiceField(choices=MEAL_CHOICES)
	dishes = PlanDishLineSerializer(many=True, allow_empty=False)


class HeadcountQuerySerializer(serializers.Serializer):
	messFacilityId = serializers.PrimaryKeyRelatedField(queryset=MessFacility.objects.all())
	meal = serializers.ChoiceField(choices=MEAL_CHOICES)
	date = serializers.DateField(required=False)


class MealAttendanceSerializer(serializers.ModelSerializer):
	student_name = serializers.CharField(source='student.name', read_only=True)
	register_number = serializers.CharField(source='student.register_number', read_only=True)
	meal = serializers.CharField(source='meal_plan.meal', read_only=True)
	mess_facility = serializers.IntegerField(source='meal_plan.mess_facility_id', read_only=True)

	class Meta:
		model = MealAttendance
		fields = ['id', 'student', 'student_name', 'register_number', 'meal_plan', 'meal',
				  'mess_facility', 'attended_on', 'attended_at', 'device_id']
		read_only_fields = fields
