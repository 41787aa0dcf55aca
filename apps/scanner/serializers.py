from rest_framework import serializers
from apps.core.models import MEAL_CHOICES, ScanLog


class MealTypeField(serializers.ChoiceField):
	"""Meal choice that also accepts lowercase names, e.g. lunch"""

	def __init__(self, **kwargs):
		super().__init__(choices=MEAL_CHOICES, **kwargs)

	def to_internal_value(self, data):
		if isinstance(data, str):
			data = data.strip().upper()
		return super().to_internal_value(data)


class ScanRequestSerializer(serializers.Serializer):
	qrCode = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='', trim_whitespace=True)
	deviceId = serializers.CharField(required=False, allow_blank=True, default='')
	mealType = MealTypeField(required=False, allow_null=True, allow_blank=True)


class ManualApprovalSerializer(serializers.Serializer):
	approvalToken = serializers.CharField(required=False, allow_blank=True)
	studentId = serializers.IntegerField(required=False)
	approved = serializers.BooleanField()
	deviceId = serializers.CharField(required=False, allow_blank=True, default='')
	mealType = MealTypeField(required=False, allow_null=True)

	def validate(self, attrs):
		if not attrs.get('approvalToken') and not attrs.get('studentId'):
			raise serializers.ValidationError('approvalToken or studentId is required')
		return attrs


class ScanLogSerializer(serializers.ModelSerializer):
	register_number = serializers.CharField(source='student.register_number', read_only=True, default=None)
	order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)
	scanned_by = serializers.CharField(source='scanned_by.username', read_only=True, default=None)

	class Meta:
		model = ScanLog
		fields = ['id', 'student', 'student_name', 'register_number', 'order', 'order_number',
				  'scanned_code', 'meal_type', 'scan_result', 'access_granted', 'message',
				  'device_id', 'scanned_by', 'scanned_at', 'scan_date']
