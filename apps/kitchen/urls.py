# URLs for kitchen app
from django.urls import path
from . import views

urlpatterns = [
	path('dishes', views.dishes, name='dishes'),
	path('dishes/<int:dish_id>', views.dish_detail, name='dish_detail'),

	path('meal-plans', views.meal_plans, name='meal_plans'),
	path('meal-plans/headcount', views.headcount, name='meal_plan_headcount'),
	path('meal-plans/<int:plan_id>', views.meal_plan_detail, name='meal_plan_detail'),
	path('meal-plans/<int:plan_id>/requirements', views.meal_plan_requirements, name='meal_plan_requirements'),

	path('reports/meal-attendance', views.meal_attendance_report, name='meal_attendance_report'),
]
