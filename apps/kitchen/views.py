# Views for kitchen app

from datetime import datetime

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.db.models import Count
from django.shortcuts import get_object_or_404
from django.utils import timezone

from apps.api.permissions import capability
from apps.core.models import MEAL_TYPES, MessFacility
from apps.core.services import planned_headcount
from .models import Dish, MealAttendance, MealPlan
from .serializers import (
    DishSerializer, HeadcountQuerySerializer, MealAttendanceSerializer, MealPlanSerializer,
    MealPlanWriteSerializer
)
from .services import ingredient_requirements, recompute_headcount, upsert_meal_plans

KITCHEN = capability('kitchen.read', 'kitchen.write')


@api_view(['GET', 'POST'])
@permission_classes([KITCHEN])
def dishes(request):
    if request.method == 'GET':
        queryset = Dish.objects.prefetch_related('recipes__item__unit')
        if request.query_params.get('category'):
            queryset = queryset.filter(category=request.query_params['category'])
        if request.query_params.get('active') == 'true':
            queryset = queryset.filter(is_active=True)
        return Response(DishSerializer(queryset, many=True).data)

    serializer = DishSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    dish = serializer.save()
    return Response(DishSerializer(dish).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([KITCHEN])
def dish_detail(request, dish_id):
    dish = get_object_or_404(Dish, id=dish_id)
    if request.method == 'GET':
        return Response(DishSerializer(dish).data)

    if request.method == 'DELETE':
        # dishes referenced by meal plans are retired, not removed
        dish.is_active = False
        dish.save(update_fields=['is_active', 'updated_at'])
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = DishSerializer(dish, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    dish = serializer.save()
    return Response(DishSerializer(dish).data)


@api_view(['GET', 'POST'])
@permission_classes([KITCHEN])
def meal_plans(request):
    if request.method == 'GET':
        queryset = MealPlan.objects.select_related('mess_facility').prefetch_related('dishes__dish')
        params = request.query_params
        if params.get('messFacilityId'):
            queryset = queryset.filter(mess_facility_id=params['messFacilityId'])
        if params.get('day') not in (None, ''):
            queryset = queryset.filter(day=params['day'])
        if params.get('meal'):
            queryset = queryset.filter(meal=params['meal'])
        return Response(MealPlanSerializer(queryset, many=True).data)

    serializer = MealPlanWriteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    plans = upsert_meal_plans(data['messFacilityIds'], data['day'], data['meal'], data['dishes'])
    return Response(
        {
            'message': f'Meal plan saved for {len(plans)} mess facilities',
            'mealPlans': MealPlanSerializer(plans, many=True).data,
        },
        status=status.HTTP_201_CREATED
    )


@api_view(['GET', 'DELETE'])
@permission_classes([KITCHEN])
def meal_plan_detail(request, plan_id):
    plan = get_object_or_404(MealPlan.objects.select_related('mess_facility'), id=plan_id)
    if request.method == 'DELETE':
        plan.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    if request.query_params.get('refresh') == 'true':
        recompute_headcount(plan)
    return Response(MealPlanSerializer(plan).data)


@api_view(['GET'])
@permission_classes([KITCHEN])
def meal_plan_requirements(request, plan_id):
    """Ingredient quantities needed to cook the plan for its planned headcount"""
    plan = get_object_or_404(MealPlan.objects.select_related('mess_facility'), id=plan_id)
    students = plan.planned_students
    if request.query_params.get('students'):
        try:
            students = max(0, int(request.query_params['students']))
        except ValueError:
            return Response({'error': 'students must be a number'}, status=status.HTTP_400_BAD_REQUEST)

    rows = ingredient_requirements(plan, students)
    return Response({
        'mealPlan': MealPlanSerializer(plan).data,
        'students': students,
        'requirements': [
            {
                'itemId': row['item_id'],
                'name': row['name'],
                'unit': row['unit'],
                'required': str(row['required']),
                'onHand': str(row['on_hand']),
                'shortfall': str(row['shortfall']),
                'estimatedCost': str(row['estimated_cost']),
            }
            for row in rows
        ],
        'hasShortfall': any(row['shortfall'] > 0 for row in rows),
    })


@api_view(['GET'])
@permission_classes([KITCHEN])
def headcount(request):
    serializer = HeadcountQuerySerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    on_date = data.get('date') or timezone.localdate()
    return Response({
        'messFacilityId': data['messFacilityId'].id,
        'meal': data['meal'],
        'date': on_date,
        'plannedStudents': planned_headcount(data['messFacilityId'], data['meal'], on_date),
    })


@api_view(['GET'])
@permission_classes([capability('reports.read')])
def meal_attendance_report(request):
    """Attendance per facility and meal for a date, against the planned headcount"""
    on_date = timezone.localdate()
    if request.query_params.get('date'):
        try:
            on_date = datetime.strptime(request.query_params['date'], '%Y-%m-%d').date()
        except ValueError:
            return Response({'error': 'date must be YYYY-MM-DD'}, status=status.HTTP_400_BAD_REQUEST)

    records = MealAttendance.objects.filter(attended_on=on_date).select_related('student', 'meal_plan')
    facilities = MessFacility.objects.filter(is_active=True)
    if request.query_params.get('messFacilityId'):
        records = records.filter(meal_plan__mess_facility_id=request.query_params['messFacilityId'])
        facilities = facilities.filter(id=request.query_params['messFacilityId'])

    counts = {
        (row['meal_plan__mess_facility_id'], row['meal_plan__meal']): row['total']
        for row in records.values('meal_plan__mess_facility_id', 'meal_plan__meal').annotate(total=Count('id'))
    }
    plans = {
        (plan.mess_facility_id, plan.meal): plan.planned_students
        for plan in MealPlan.objects.filter(day=on_date.weekday(), mess_facility__in=facilities)
    }

    summary = []
    for facility in facilities:
        for meal in MEAL_TYPES:
            summary.append({
                'messFacilityId': facility.id,
                'messFacilityName': facility.name,
                'meal': meal,
                'planned': plans.get((facility.id, meal), 0),
                'attended': counts.get((facility.id, meal), 0),
            })

    response = {'date': on_date, 'summary': summary, 'totalAttended': records.count()}
    if request.query_params.get('detail') == 'true':
        response['records'] = MealAttendanceSerializer(records.order_by('attended_at'), many=True).data
    return Response(response)
