from datetime import timedelta
from decimal import Decimal
from rest_framework import serializers
from django.db import transaction
from django.utils import timezone
from apps.core.config import load_meal_config
from apps.core.models import (
	MEAL_CHOICES, MessFacility, Student, Package, Subscription, MenuItem,
	Order, OrderItem, SystemConfig, User
)
from apps.core.services import overlapping_subscriptions
from apps.utils.qr_utils import generate_coupon_code


class UserSerializer(serializers.ModelSerializer):
	mess_facility_name = serializers.CharField(source='mess_facility.name', read_only=True, default=None)

	class Meta:
		model = User
		fields = ['id', 'username', 'first_name', 'last_name', 'email', 'phone', 'role',
				  'mess_facility', 'mess_facility_name', 'is_active']
		read_only_fields = fields


class MessFacilitySerializer(serializers.ModelSerializer):
	active_subscriptions = serializers.SerializerMethodField()

	class Meta:
		model = MessFacility
		fields = ['id', 'name', 'location', 'capacity', 'is_active', 'active_subscriptions', 'created_at']
		read_only_fields = ['created_at']

	def get_active_subscriptions(self, obj):
		return obj.subscriptions.filter(status='ACTIVE').count()


class StudentSerializer(serializers.ModelSerializer):
	mess_facility_name = serializers.CharField(source='mess_facility.name', read_only=True, default=None)

	class Meta:
		model = Student
		fields = ['id', 'register_number', 'name', 'user_type', 'employee_id', 'department',
				  'mobile_number', 'email', 'room_number', 'photo_url', 'qr_code',
				  'mess_facility', 'mess_facility_name', 'tg_chat_id', 'is_active', 'created_at']
		read_only_fields = ['qr_code', 'created_at']

	def validate_register_number(self, value):
		# register_number is the student's identity once enrolled
		if self.instance is not None and value != self.instance.register_number:
			raise serializers.ValidationError('Register number cannot be changed')
		return value


class PackageSerializer(serializers.ModelSerializer):
	meals_included = serializers.ListField(
		child=serializers.ChoiceField(choices=MEAL_CHOICES), allow_empty=False
	)
	mess_facility_name = serializers.CharField(source='mess_facility.name', read_only=True)
	subscriptions = serializers.SerializerMethodField()

	class Meta:
		model = Package
		fields = ['id', 'name', 'description', 'mess_facility', 'mess_facility_name', 'duration_days',
				  'price', 'meals_included', 'is_active', 'subscriptions', 'created_at']
		read_only_fields = ['created_at']

	def validate_meals_included(self, value):
		# keep canonical order, drop repeats
		return [meal for meal, _ in MEAL_CHOICES if meal in value]

	def get_subscriptions(self, obj):
		return obj.subscriptions.count()


class SubscriptionSerializer(serializers.ModelSerializer):
	student_name = serializers.CharField(source='student.name', read_only=True)
	register_number = serializers.CharField(source='student.register_number', read_only=True)
	user_type = serializers.CharField(source='student.user_type', read_only=True)
	package_name = serializers.CharField(source='package.name', read_only=True)
	meals_included = serializers.JSONField(source='package.meals_included', read_only=True)
	mess_facility_name = serializers.CharField(source='mess_facility.name', read_only=True)
	mess_facility = serializers.PrimaryKeyRelatedField(queryset=MessFacility.objects.all(), required=False)
	end_date = serializers.DateField(required=False)
	amount_paid = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)

	class Meta:
		model = Subscription
		fields = ['id', 'student', 'student_name', 'register_number', 'user_type', 'package',
				  'package_name', 'meals_included', 'mess_facility', 'mess_facility_name',
				  'start_date', 'end_date', 'status', 'amount_paid', 'created_at']
		read_only_fields = ['status', 'created_at']

	def validate(self, attrs):
		package = attrs['package']
		facility = attrs.get('mess_facility') or package.mess_facility
		if facility.pk != package.mess_facility_id:
			raise serializers.ValidationError({'package': 'Package belongs to a different mess facility'})
		if not package.is_active:
			raise serializers.ValidationError({'package': 'Package is not active'})

		start_date = attrs['start_date']
		end_date = attrs.get('end_date') or start_date + timedelta(days=package.duration_days - 1)
		if end_date < start_date:
			raise serializers.ValidationError({'end_date': 'End date must not be before start date'})

		if overlapping_subscriptions(attrs['student'], facility, start_date, end_date).exists():
			raise serializers.ValidationError(
				'Student already has an active subscription at this facility for an overlapping period'
			)

		attrs['mess_facility'] = facility
		attrs['end_date'] = end_date
		attrs.setdefault('amount_paid', package.price)
		return attrs


class SubscriptionStatusSerializer(serializers.Serializer):
	status = serializers.ChoiceField(choices=Subscription.STATUS_CHOICES)


class MenuItemSerializer(serializers.ModelSerializer):
	mess_facility_name = serializers.CharField(source='mess_facility.name', read_only=True)

	class Meta:
		model = MenuItem
		fields = ['id', 'mess_facility', 'mess_facility_name', 'name', 'description', 'meal_type',
				  'price', 'is_available', 'created_at']
		read_only_fields = ['created_at']


class OrderItemSerializer(serializers.ModelSerializer):
	name = serializers.CharField(source='menu_item.name', read_only=True)
	subtotal = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

	class Meta:
		model = OrderItem
		fields = ['id', 'menu_item', 'name', 'quantity', 'price', 'subtotal']
		read_only_fields = ['price']


class OrderSerializer(serializers.ModelSerializer):
	student_name = serializers.CharField(source='student.name', read_only=True)
	register_number = serializers.CharField(source='student.register_number', read_only=True)
	mess_facility_name = serializers.CharField(source='mess_facility.name', read_only=True)
	items = OrderItemSerializer(many=True, read_only=True)

	class Meta:
		model = Order
		fields = ['id', 'order_number', 'student', 'student_name', 'register_number', 'mess_facility',
				  'mess_facility_name', 'meal_type', 'order_date', 'status', 'payment_status',
				  'total_amount', 'coupon_code', 'coupon_expires_at', 'served_at', 'items', 'created_at']
		read_only_fields = fields


class OrderLineSerializer(serializers.Serializer):
	menu_item = serializers.PrimaryKeyRelatedField(queryset=MenuItem.objects.all())
	quantity = serializers.IntegerField(min_value=1)


class OrderCreateSerializer(serializers.Serializer):
	student = serializers.PrimaryKeyRelatedField(queryset=Student.objects.all())
	mess_facility = serializers.PrimaryKeyRelatedField(queryset=MessFacility.objects.all())
	meal_type = serializers.ChoiceField(choices=MEAL_CHOICES)
	payment_status = serializers.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES, default='PENDING')
	items = OrderLineSerializer(many=True, allow_empty=False)

	def validate(self, attrs):
		for line in attrs['items']:
			menu_item = line['menu_item']
			if menu_item.mess_facility_id != attrs['mess_facility'].pk:
				raise serializers.ValidationError({'items': f'{menu_item.name} is not served at this facility'})
			if not menu_item.is_available:
				raise serializers.ValidationError({'items': f'{menu_item.name} is not available'})
		return attrs

	def create(self, validated_data):
		config = load_meal_config()
		now = timezone.now()
		status = config.default_order_status
		if status not in ('PENDING', 'CONFIRMED', 'PREPARED'):
			status = 'PENDING'

		order_number = Order.generate_order_number()
		with transaction.atomic():
			order = Order.objects.create(
				order_number=order_number,
				student=validated_data['student'],
				mess_facility=validated_data['mess_facility'],
				meal_type=validated_data['meal_type'],
				order_date=timezone.localdate(now),
				status=status,
				payment_status=validated_data['payment_status'],
				coupon_code=generate_coupon_code(order_number, now),
				coupon_expires_at=now + timedelta(hours=config.qr_code_expiry_hours),
			)
			total = Decimal('0')
			for line in validated_data['items']:
				item = OrderItem.objects.create(
					order=order,
					menu_item=line['menu_item'],
					quantity=line['quantity'],
					price=line['menu_item'].price,
				)
				total += item.subtotal
			order.total_amount = total
			order.save(update_fields=['total_amount'])
		return order


class OrderUpdateSerializer(serializers.Serializer):
	status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=False)
	payment_status = serializers.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES, required=False)


class SystemConfigSerializer(serializers.ModelSerializer):
	class Meta:
		model = SystemConfig
		fields = ['id', 'key', 'value', 'description', 'category', 'updated_at']
		read_only_fields = ['updated_at']
