# Views for api app

import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone

from apps.core.config import WINDOW_KEYS, is_valid_time, load_meal_config
from apps.core.models import (
    AuditLog, MenuItem, MessFacility, Order, Package, Student, Subscription, SystemConfig
)
from apps.core.services import overlapping_subscriptions
from apps.utils.notifications import notify_subscription_created, notify_subscription_status
from .permissions import ROLE_CAPABILITIES, capability
from .serializers import (
    MenuItemSerializer, MessFacilitySerializer, OrderCreateSerializer, OrderSerializer,
    OrderUpdateSerializer, PackageSerializer, StudentSerializer, SubscriptionSerializer,
    SubscriptionStatusSerializer, SystemConfigSerializer, UserSerializer
)

logger = logging.getLogger(__name__)

FNB = capability('fnb.read', 'fnb.write')
CONFIG = capability('config.read', 'config.write')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    """Current staff user with role capabilities"""
    data = UserSerializer(request.user).data
    data['capabilities'] = sorted(ROLE_CAPABILITIES.get(request.user.role, set()))
    return Response(data)


@api_view(['GET'])
@permission_classes([FNB])
def fnb_dashboard(request):
    today = timezone.localdate()
    month_start = today.replace(day=1)
    expiring_days = settings.MESS_CONFIG['expiring_subscription_days']

    subscriptions = Subscription.objects.all()
    revenue = subscriptions.filter(
        created_at__date__gte=month_start, status__in=['ACTIVE', 'EXPIRED']
    ).aggregate(total=Sum('amount_paid'))['total']

    user_type_stats = Student.objects.values('user_type').annotate(count=Count('id')).order_by('user_type')
    package_stats = Package.objects.annotate(subscription_count=Count('subscriptions')).order_by('name')
    messwise = MessFacility.objects.annotate(
        active_count=Count('subscriptions', filter=Q(subscriptions__status='ACTIVE'))
    ).order_by('name')

    return Response({
        'stats': {
            'totalSubscriptions': subscriptions.count(),
            'activeSubscriptions': subscriptions.filter(status='ACTIVE').count(),
            'expiringSubscriptions': subscriptions.filter(
                status='ACTIVE', end_date__gte=today, end_date__lte=today + timedelta(days=expiring_days)
            ).count(),
            'monthlyRevenue': str(revenue or 0),
        },
        'userTypeStats': [{'userType': row['user_type'], 'count': row['count']} for row in user_type_stats],
        'packageStats': [{'name': pkg.name, 'subscriptions': pkg.subscription_count} for pkg in package_stats],
        'messwiseActiveCounts': [
            {'id': mess.id, 'name': mess.name, 'activeCount': mess.active_count} for mess in messwise
        ],
    })


@api_view(['GET', 'POST'])
@permission_classes([FNB])
def mess_facilities(request):
    if request.method == 'GET':
        facilities = MessFacility.objects.all()
        return Response(MessFacilitySerializer(facilities, many=True).data)

    serializer = MessFacilitySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    facility = serializer.save()
    AuditLog.record('MESS_FACILITY_CREATED', {'id': facility.id, 'name': facility.name}, request.user)
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([FNB])
def mess_facility_detail(request, facility_id):
    facility = get_object_or_404(MessFacility, id=facility_id)
    if request.method == 'GET':
        data = MessFacilitySerializer(facility).data
        data['packages'] = PackageSerializer(facility.packages.all(), many=True).data
        data['menu_items'] = MenuItemSerializer(facility.menu_items.all(), many=True).data
        return Response(data)

    serializer = MessFacilitySerializer(facility, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data)


@api_view(['GET', 'POST'])
@permission_classes([FNB])
def packages(request):
    if request.method == 'GET':
        queryset = Package.objects.select_related('mess_facility')
        facility_id = request.query_params.get('messFacilityId')
        if facility_id:
            queryset = queryset.filter(mess_facility_id=facility_id)
        return Response(PackageSerializer(queryset, many=True).data)

    serializer = PackageSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['PUT'])
@permission_classes([FNB])
def package_detail(request, package_id):
    package = get_object_or_404(Package, id=package_id)
    serializer = PackageSerializer(package, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data)


@api_view(['GET', 'POST'])
@permission_classes([FNB])
def subscriptions(request):
    if request.method == 'GET':
        queryset = Subscription.objects.select_related('student', 'package', 'mess_facility')
        params = request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('messFacilityId'):
            queryset = queryset.filter(mess_facility_id=params['messFacilityId'])
        if params.get('userType'):
            queryset = queryset.filter(student__user_type=params['userType'])
        if params.get('studentId'):
            queryset = queryset.filter(student_id=params['studentId'])
        return Response(SubscriptionSerializer(queryset, many=True).data)

    serializer = SubscriptionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    subscription = serializer.save()
    AuditLog.record('SUBSCRIPTION_CREATED', {
        'id': subscription.id,
        'student': subscription.student.register_number,
        'package': subscription.package.name,
    }, request.user)
    notify_subscription_created(subscription)
    return Response(SubscriptionSerializer(subscription).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([FNB])
def subscription_detail(request, subscription_id):
    if request.method == 'GET':
        subscription = get_object_or_404(
            Subscription.objects.select_related('student', 'package', 'mess_facility'), id=subscription_id
        )
        return Response(SubscriptionSerializer(subscription).data)

    serializer = SubscriptionStatusSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    new_status = serializer.validated_data['status']

    with transaction.atomic():
        subscription = get_object_or_404(
            Subscription.objects.select_for_update().select_related('student', 'package', 'mess_facility'),
            id=subscription_id
        )
        previous = subscription.status
        if new_status == 'ACTIVE' and previous == 'SUSPENDED':
            clash = overlapping_subscriptions(
                subscription.student, subscription.mess_facility,
                subscription.start_date, subscription.end_date, exclude_id=subscription.pk
            )
            if clash.exists():
                return Response(
                    {'error': 'Another active subscription overlaps this period'},
                    status=status.HTTP_400_BAD_REQUEST
                )
        if subscription.transition_to(new_status):
            subscription.save(update_fields=['status', 'updated_at'])
            AuditLog.record('SUBSCRIPTION_STATUS_CHANGED', {
                'id': subscription.id, 'from': previous, 'to': new_status
            }, request.user)
            notify_subscription_status(subscription)

    return Response(SubscriptionSerializer(subscription).data)


@api_view(['GET', 'POST'])
@permission_classes([FNB])
def students(request):
    if request.method == 'GET':
        queryset = Student.objects.select_related('mess_facility')
        params = request.query_params
        if params.get('search'):
            term = params['search']
            queryset = queryset.filter(Q(name__icontains=term) | Q(register_number__icontains=term))
        if params.get('userType'):
            queryset = queryset.filter(user_type=params['userType'])
        if params.get('messFacilityId'):
            queryset = queryset.filter(mess_facility_id=params['messFacilityId'])
        return Response(StudentSerializer(queryset, many=True).data)

    serializer = StudentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    student = serializer.save()
    logger.info(f"Enrolled student {student.register_number}")
    return Response(StudentSerializer(student).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([FNB])
def student_detail(request, student_id):
    student = get_object_or_404(Student, id=student_id)
    if request.method == 'GET':
        data = StudentSerializer(student).data
        data['subscriptions'] = SubscriptionSerializer(
            student.subscriptions.select_related('package', 'mess_facility'), many=True
        ).data
        return Response(data)

    serializer = StudentSerializer(student, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data)


@api_view(['GET', 'POST'])
@permission_classes([FNB])
def menu_items(request):
    if request.method == 'GET':
        queryset = MenuItem.objects.select_related('mess_facility')
        params = request.query_params
        if params.get('messFacilityId'):
            queryset = queryset.filter(mess_facility_id=params['messFacilityId'])
        if params.get('mealType'):
            queryset = queryset.filter(meal_type=params['mealType'])
        return Response(MenuItemSerializer(queryset, many=True).data)

    serializer = MenuItemSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['PUT'])
@permission_classes([FNB])
def menu_item_detail(request, menu_item_id):
    menu_item = get_object_or_404(MenuItem, id=menu_item_id)
    serializer = MenuItemSerializer(menu_item, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data)


@api_view(['GET', 'POST'])
@permission_classes([FNB])
def orders(request):
    if request.method == 'GET':
        queryset = Order.objects.select_related('student', 'mess_facility').prefetch_related('items__menu_item')
        params = request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('mealType'):
            queryset = queryset.filter(meal_type=params['mealType'])
        if params.get('paymentStatus'):
            queryset = queryset.filter(payment_status=params['paymentStatus'])
        return Response(OrderSerializer(queryset, many=True).data)

    serializer = OrderCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    order = serializer.save()
    AuditLog.record('ORDER_CREATED', {'id': order.id, 'order_number': order.order_number}, request.user)
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([FNB])
def order_detail(request, order_id):
    if request.method == 'GET':
        order = get_object_or_404(Order.objects.select_related('student', 'mess_facility'), id=order_id)
        return Response(OrderSerializer(order).data)

    serializer = OrderUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    with transaction.atomic():
        order = get_object_or_404(Order.objects.select_for_update(), id=order_id)
        fields = ['updated_at']
        if 'status' in data and order.transition_to(data['status']):
            fields += ['status', 'served_at']
        if 'payment_status' in data:
            order.payment_status = data['payment_status']
            fields.append('payment_status')
        order.save(update_fields=fields)

    return Response(OrderSerializer(order).data)


# System configuration

@api_view(['GET', 'POST'])
@permission_classes([CONFIG])
def system_config(request):
    if request.method == 'GET':
        queryset = SystemConfig.objects.all()
        category = request.query_params.get('category')
        if category:
            queryset = queryset.filter(category=category)
        return Response(SystemConfigSerializer(queryset, many=True).data)

    serializer = SystemConfigSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    _validate_config_value(serializer.validated_data['key'], serializer.validated_data['value'])
    serializer.save()
    return Response(serializer.data, status=status.HTTP_201_CREATED)


def _validate_config_value(key, value):
    if key in WINDOW_KEYS and not is_valid_time(value):
        raise ValidationError({key: 'Expected a time in HH:MM format'})


@api_view(['GET', 'POST'])
@permission_classes([CONFIG])
def meal_times(request):
    """Current meal windows; POST updates any of the <meal>_start/<meal>_end keys"""
    if request.method == 'GET':
        return Response(load_meal_config().as_dict())

    updates = {key: str(value) for key, value in request.data.items() if key in WINDOW_KEYS}
    if not updates:
        return Response({'error': 'No meal time keys supplied'}, status=status.HTTP_400_BAD_REQUEST)
    for key, value in updates.items():
        _validate_config_value(key, value)

    with transaction.atomic():
        for key, value in updates.items():
            SystemConfig.objects.update_or_create(
                key=key, defaults={'value': value, 'category': 'meal_times'}
            )
    config = load_meal_config()
    AuditLog.record('MEAL_TIMES_UPDATED', updates, request.user)
    return Response(config.as_dict())


@api_view(['POST'])
@permission_classes([CONFIG])
def system_config_bulk_update(request):
    entries = request.data.get('configs', request.data)
    if isinstance(entries, dict):
        entries = [{'key': key, 'value': value} for key, value in entries.items()]
    if not isinstance(entries, list) or not entries:
        return Response({'error': 'configs must be a non-empty list'}, status=status.HTTP_400_BAD_REQUEST)

    saved = []
    with transaction.atomic():
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get('key') or 'value' not in entry:
                return Response({'error': 'Each config needs a key and a value'}, status=status.HTTP_400_BAD_REQUEST)
            value = str(entry['value'])
            _validate_config_value(entry['key'], value)
            defaults = {'value': value}
            for field in ('description', 'category'):
                if entry.get(field):
                    defaults[field] = entry[field]
            config, _ = SystemConfig.objects.update_or_create(key=entry['key'], defaults=defaults)
            saved.append(config)

    AuditLog.record('SYSTEM_CONFIG_BULK_UPDATED', {'keys': [c.key for c in saved]}, request.user)
    return Response(SystemConfigSerializer(saved, many=True).data)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([CONFIG])
def system_config_detail(request, key):
    config = get_object_or_404(SystemConfig, key=key)
    if request.method == 'GET':
        return Response(SystemConfigSerializer(config).data)

    if request.method == 'DELETE':
        config.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = SystemConfigSerializer(config, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    _validate_config_value(key, serializer.validated_data.get('value', config.value))
    serializer.save(key=key)
    return Response(serializer.data)
