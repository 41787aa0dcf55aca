import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from apps.core.services import planned_headcount
from apps.inventory.services import stock_levels
from .models import Dish, MealPlan, MealPlanDish

logger = logging.getLogger(__name__)

SERVING_BATCH = Decimal(5)


def dish_cost(dish):
    """Cost of one batch (5 students) from recipe quantities and item unit costs"""
    total = Decimal('0')
    for recipe in dish.recipes.select_related('item'):
        total += recipe.qty_per_5_students * recipe.item.cost_per_unit
    return total.quantize(Decimal('0.01'))


def refresh_dish_cost(dish):
    dish.cost_per_5_students = dish_cost(dish)
    dish.save(update_fields=['cost_per_5_students', 'updated_at'])
    return dish.cost_per_5_students


def next_date_for_day(day, today=None):
    """Next calendar date (today included) falling on day, 0=Monday"""
    today = today or timezone.localdate()
    return today + timedelta(days=(day - today.weekday()) % 7)


@transaction.atomic
def upsert_meal_plans(facilities, day, meal, dishes, today=None):
    """
    Create or replace the (facility, day, meal) plan for each facility.

    dishes: [{'dish': Dish, 'position': int, 'is_main': bool}]
    """
    plan_date = next_date_for_day(day, today)
    plans = []
    for facility in facilities:
        plan, created = MealPlan.objects.update_or_create(
            mess_facility=facility,
            day=day,
            meal=meal,
            defaults={'planned_students': planned_headcount(facility, meal, plan_date)},
        )
        if not created:
            plan.dishes.all().delete()
        MealPlanDish.objects.bulk_create([
            MealPlanDish(
                meal_plan=plan,
                dish=entry['dish'],
                position=entry.get('position', index),
                is_main=entry.get('is_main', False),
            )
            for index, entry in enumerate(dishes)
        ])
        plans.append(plan)
        logger.info(f"{'Created' if created else 'Replaced'} meal plan {plan} for {plan.planned_students} students")
    return plans


def recompute_headcount(plan, on_date=None):
    on_date = on_date or next_date_for_day(plan.day)
    plan.planned_students = planned_headcount(plan.mess_facility, plan.meal, on_date)
    plan.save(update_fields=['planned_students', 'updated_at'])
    return plan.planned_students


def ingredient_requirements(plan, students=None):
    """Per item: qty_per_5_students x students / 5 summed over the plan's dishes, against stock on hand"""
    students = plan.planned_students if students is None else students
    needed = {}
    for entry in plan.dishes.select_related('dish'):
        for recipe in entry.dish.recipes.select_related('item__unit'):
            row = needed.setdefault(recipe.item_id, {
                'item_id': recipe.item_id,
                'name': recipe.item.name,
                'unit': recipe.item.unit.symbol,
                'required': Decimal('0'),
                'cost_per_unit': recipe.item.cost_per_unit,
            })
            row['required'] += recipe.qty_per_5_students * Decimal(students) / SERVING_BATCH

    levels = stock_levels()
    rows = []
    for item_id, row in needed.items():
        on_hand = levels.get(item_id, Decimal('0'))
        required = row['required'].quantize(Decimal('0.001'))
        rows.append({
            'item_id': item_id,
            'name': row['name'],
            'unit': row['unit'],
            'required': required,
            'on_hand': on_hand,
            'shortfall': max(required - on_hand, Decimal('0')),
            'estimated_cost': (required * row['cost_per_unit']).quantize(Decimal('0.01')),
        })
    return sorted(rows, key=lambda row: row['name'])
