from datetime import timedelta
from django.db import models
from django.db.models import Q
from django.contrib.auth.models import AbstractUser
from django.utils import timezone
from django.core.validators import RegexValidator, MinValueValidator
import hashlib
import secrets

from .exceptions import InvalidTransition, ImmutableRecord

MEAL_CHOICES = [
	('BREAKFAST', 'Breakfast'),
	('LUNCH', 'Lunch'),
	('SNACKS', 'Snacks'),
	('DINNER', 'Dinner'),
]
MEAL_TYPES = [choice[0] for choice in MEAL_CHOICES]

phone_validator = RegexValidator(regex=r'^\+?1?\d{9,15}$')


class MessFacility(models.Model):
	name = models.CharField(max_length=100, unique=True)
	location = models.CharField(max_length=200, blank=True)
	capacity = models.PositiveIntegerField(default=0)
	is_active = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return self.name

	class Meta:
		db_table = 'mess_facilities'
		verbose_name_plural = 'mess facilities'
		ordering = ['name']


class User(AbstractUser):
	ROLE_CHOICES = [
		('ADMIN', 'Admin'),
		('FNB_MANAGER', 'F&B Manager'),
		('CHEF', 'Chef'),
		('STORE', 'Store'),
		('COOK', 'Cook'),
		('SCANNER', 'Scanner'),
		('VIEWER', 'Viewer'),
	]

	role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='VIEWER')
	phone = models.CharField(max_length=15, blank=True, validators=[phone_validator])
	mess_facility = models.ForeignKey(
		MessFacility, on_delete=models.SET_NULL, null=True, blank=True, related_name='staff'
	)

	def __str__(self):
		return f"{self.get_full_name() or self.username} ({self.role})"

	class Meta:
		db_table = 'users'


class ApiToken(models.Model):
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='api_tokens')
	label = models.CharField(max_length=100, blank=True)
	issued_at = models.DateTimeField(auto_now_add=True)
	expires_at = models.DateTimeField(null=True, blank=True)
	last_used_at = models.DateTimeField(null=True, blank=True)
	active = models.BooleanField(default=True)
	token_hash = models.CharField(max_length=64, unique=True)

	def __str__(self):
		return f"{self.user.username}:{self.label} - {'Active' if self.active else 'Inactive'}"

	@staticmethod
	def hash_token(token):
		return hashlib.sha256(token.encode()).hexdigest()

	@classmethod
	def create_token(cls, user, label='', expires_days=30):
		token = secrets.token_urlsafe(32)

		expires_at = None
		if expires_days:
			expires_at = timezone.now() + timedelta(days=expires_days)

		api_token = cls.objects.create(
			user=user,
			label=label,
			expires_at=expires_at,
			token_hash=cls.hash_token(token)
		)

		return api_token, token

	def is_expired(self, now=None):
		now = now or timezone.now()
		return self.expires_at is not None and now > self.expires_at

	class Meta:
		db_table = 'api_tokens'


class Student(models.Model):
	USER_TYPE_CHOICES = [
		('STUDENT', 'Student'),
		('EMPLOYEE', 'Employee'),
	]

	register_number = models.CharField(max_length=30, unique=True)
	name = models.CharField(max_length=100)
	user_type = models.CharField(max_length=10, choices=USER_TYPE_CHOICES, default='STUDENT')
	employee_id = models.CharField(max_length=30, blank=True)
	department = models.CharField(max_length=100, blank=True)
	mobile_number = models.CharField(max_length=15, blank=True, validators=[phone_validator])
	email = models.EmailField(blank=True)
	room_number = models.CharField(max_length=10, blank=True)
	photo_url = models.URLField(blank=True)
	qr_code = models.CharField(max_length=64, unique=True, editable=False)
	mess_facility = models.ForeignKey(
		MessFacility, on_delete=models.SET_NULL, null=True, blank=True, related_name='students'
	)
	tg_chat_id = models.BigIntegerField(null=True, blank=True)
	is_active = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.name} ({self.register_number})"

	@classmethod
	def from_db(cls, db, field_names, values):
		instance = super().from_db(db, field_names, values)
		instance._loaded_qr_code = instance.__dict__.get('qr_code')
		return instance

	def save(self, *args, **kwargs):
		# qr_code is assigned once at enrollment
		loaded = getattr(self, '_loaded_qr_code', None)
		if loaded and self.qr_code != loaded:
			raise ImmutableRecord("A student's QR code cannot be changed")
		if not self.qr_code:
			from apps.utils.qr_utils import generate_student_code
			self.qr_code = generate_student_code(self.register_number)
		super().save(*args, **kwargs)
		self._loaded_qr_code = self.qr_code

	class Meta:
		db_table = 'students'
		ordering = ['name']


class Package(models.Model):
	name = models.CharField(max_length=100)
	description = models.TextField(blank=True)
	mess_facility = models.ForeignKey(MessFacility, on_delete=models.CASCADE, related_name='packages')
	duration_days = models.PositiveIntegerField(validators=[MinValueValidator(1)])
	price = models.DecimalField(max_digits=10, decimal_places=2)
	meals_included = models.JSONField(default=list)
	is_active = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.name} - {self.mess_facility.name}"

	def includes_meal(self, meal_type):
		return meal_type in (self.meals_included or [])

	class Meta:
		db_table = 'packages'
		unique_together = ['mess_facility', 'name']


class Subscription(models.Model):
	STATUS_CHOICES = [
		('ACTIVE', 'Active'),
		('EXPIRED', 'Expired'),
		('SUSPENDED', 'Suspended'),
		('CANCELLED', 'Cancelled'),
	]

	ALLOWED_TRANSITIONS = {
		'ACTIVE': {'SUSPENDED', 'CANCELLED', 'EXPIRED'},
		'SUSPENDED': {'ACTIVE', 'CANCELLED'},
		'EXPIRED': set(),
		'CANCELLED': set(),
	}

	student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='subscriptions')
	package = models.ForeignKey(Package, on_delete=models.PROTECT, related_name='subscriptions')
	mess_facility = models.ForeignKey(MessFacility, on_delete=models.PROTECT, related_name='subscriptions')
	start_date = models.DateField()
	end_date = models.DateField()
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='ACTIVE')
	amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=0)
	created_at = models.DateTimeField(default=timezone.now)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.student.name} - {self.package.name} ({self.start_date} to {self.end_date})"

	def covers(self, on_date):
		return self.start_date <= on_date <= self.end_date

	def transition_to(self, new_status, system=False):
		"""Move to new_status or raise InvalidTransition. EXPIRED is reserved for the expiry sweep."""
		if new_status == self.status:
			return False
		if new_status not in self.ALLOWED_TRANSITIONS.get(self.status, set()):
			raise InvalidTransition(f"Cannot change subscription status from {self.status} to {new_status}")
		if new_status == 'EXPIRED' and not system:
			raise InvalidTransition("Subscriptions expire only when their end date has passed")
		self.status = new_status
		return True

	class Meta:
		db_table = 'subscriptions'
		ordering = ['-created_at', '-id']
		indexes = [
			models.Index(fields=['student', 'status', 'start_date', 'end_date']),
		]


class MenuItem(models.Model):
	mess_facility = models.ForeignKey(MessFacility, on_delete=models.CASCADE, related_name='menu_items')
	name = models.CharField(max_length=100)
	description = models.TextField(blank=True)
	meal_type = models.CharField(max_length=10, choices=MEAL_CHOICES)
	price = models.DecimalField(max_digits=8, decimal_places=2)
	is_available = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.name} ({self.meal_type})"

	class Meta:
		db_table = 'menu_items'


class Order(models.Model):
	STATUS_CHOICES = [
		('PENDING', 'Pending'),
		('CONFIRMED', 'Confirmed'),
		('PREPARED', 'Prepared'),
		('SERVED', 'Served'),
		('CANCELLED', 'Cancelled'),
	]

	PAYMENT_STATUS_CHOICES = [
		('PENDING', 'Pending'),
		('PAID', 'Paid'),
		('FAILED', 'Failed'),
		('REFUNDED', 'Refunded'),
	]

	STATUS_LADDER = ['PENDING', 'CONFIRMED', 'PREPARED', 'SERVED']
	SERVABLE_STATUSES = ['CONFIRMED', 'PREPARED']
	TERMINAL_STATUSES = ['SERVED', 'CANCELLED']

	order_number = models.CharField(max_length=30, unique=True)
	student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='orders')
	mess_facility = models.ForeignKey(MessFacility, on_delete=models.PROTECT, related_name='orders')
	meal_type = models.CharField(max_length=10, choices=MEAL_CHOICES)
	order_date = models.DateField(default=timezone.localdate)
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='PENDING')
	payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='PENDING')
	total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
	coupon_code = models.CharField(max_length=80, unique=True)
	coupon_expires_at = models.DateTimeField()
	served_at = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.order_number} - {self.student.name} - {self.status}"

	@staticmethod
	def generate_order_number():
		return f"ORD{timezone.now().strftime('%Y%m%d%H%M%S')}{secrets.randbelow(10000):04d}"

	def is_coupon_expired(self, now=None):
		now = now or timezone.now()
		return now > self.coupon_expires_at

	def transition_to(self, new_status):
		"""Orders move one rung up the ladder at a time, or to CANCELLED from any open state"""
		if new_status == self.status:
			return False
		if self.status in self.TERMINAL_STATUSES:
			raise InvalidTransition(f"Order {self.order_number} is already {self.status}")
		if new_status != 'CANCELLED':
			if new_status not in self.STATUS_LADDER:
				raise InvalidTransition(f"Unknown order status {new_status}")
			if self.STATUS_LADDER.index(new_status) != self.STATUS_LADDER.index(self.status) + 1:
				raise InvalidTransition(f"Cannot change order status from {self.status} to {new_status}")
		self.status = new_status
		if new_status == 'SERVED':
			self.served_at = timezone.now()
		return True

	class Meta:
		db_table = 'orders'
		ordering = ['-created_at']


class OrderItem(models.Model):
	order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
	menu_item = models.ForeignKey(MenuItem, on_delete=models.PROTECT, related_name='order_items')
	quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
	price = models.DecimalField(max_digits=8, decimal_places=2)

	@property
	def subtotal(self):
		return self.price * self.quantity

	def __str__(self):
		return f"{self.order.order_number} - {self.menu_item.name} x{self.quantity}"

	class Meta:
		db_table = 'order_items'


class ScanLog(models.Model):
	RESULT_CHOICES = [
		('SUCCESS', 'Success'),
		('DUPLICATE', 'Duplicate'),
		('DENIED', 'Denied'),
	]

	student = models.ForeignKey(
		Student, on_delete=models.SET_NULL, null=True, blank=True, related_name='scan_logs'
	)
	order = models.ForeignKey(
		Order, on_delete=models.SET_NULL, null=True, blank=True, related_name='scan_logs'
	)
	scanned_code = models.CharField(max_length=100, blank=True)
	student_name = models.CharField(max_length=100, blank=True)
	meal_type = models.CharField(max_length=10, choices=MEAL_CHOICES, blank=True)
	scan_result = models.CharField(max_length=10, choices=RESULT_CHOICES)
	access_granted = models.BooleanField(default=False)
	message = models.CharField(max_length=200, blank=True)
	device_id = models.CharField(max_length=100, blank=True)
	scanned_by = models.ForeignKey(
		User, on_delete=models.SET_NULL, null=True, blank=True, related_name='scan_logs'
	)
	scanned_at = models.DateTimeField(default=timezone.now)
	scan_date = models.DateField()

	def __str__(self):
		return f"{self.student_name or self.scanned_code} - {self.meal_type} - {self.scan_result}"

	def save(self, *args, **kwargs):
		# Append-only
		if not self._state.adding:
			raise ImmutableRecord("Scan logs cannot be modified")
		if self.scan_date is None:
			self.scan_date = timezone.localdate(self.scanned_at)
		super().save(*args, **kwargs)

	def delete(self, *args, **kwargs):
		raise ImmutableRecord("Scan logs cannot be deleted")

	class Meta:
		db_table = 'scan_logs'
		ordering = ['-scanned_at', '-id']
		constraints = [
			models.UniqueConstraint(
				fields=['student', 'meal_type', 'scan_date'],
				condition=Q(access_granted=True, order__isnull=True),
				name='uniq_granted_meal_per_day',
			),
		]
		indexes = [
			models.Index(fields=['scan_date', 'meal_type']),
			models.Index(fields=['device_id', 'scanned_at']),
		]


class PendingApproval(models.Model):
	token = models.CharField(max_length=64, unique=True)
	student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='pending_approvals')
	meal_type = models.CharField(max_length=10, choices=MEAL_CHOICES)
	device_id = models.CharField(max_length=100, blank=True)
	requested_by = models.ForeignKey(
		User, on_delete=models.SET_NULL, null=True, blank=True, related_name='approval_requests'
	)
	created_at = models.DateTimeField(default=timezone.now)
	expires_at = models.DateTimeField()
	resolved_at = models.DateTimeField(null=True, blank=True)
	resolved_by = models.ForeignKey(
		User, on_delete=models.SET_NULL, null=True, blank=True, related_name='approvals_resolved'
	)
	approved = models.BooleanField(null=True, blank=True)

	def __str__(self):
		return f"{self.student.name} - {self.meal_type} - {'open' if self.resolved_at is None else 'resolved'}"

	@classmethod
	def open_request(cls, student, meal_type, device_id='', requested_by=None, minutes=5, now=None):
		now = now or timezone.now()
		return cls.objects.create(
			token=secrets.token_urlsafe(24),
			student=student,
			meal_type=meal_type,
			device_id=device_id,
			requested_by=requested_by,
			created_at=now,
			expires_at=now + timedelta(minutes=minutes),
		)

	def is_expired(self, now=None):
		now = now or timezone.now()
		return now > self.expires_at

	class Meta:
		db_table = 'pending_approvals'
		ordering = ['-created_at']


class SystemConfig(models.Model):
	key = models.CharField(max_length=100, unique=True)
	value = models.TextField()
	description = models.CharField(max_length=255, blank=True)
	category = models.CharField(max_length=50, default='general')
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.key}={self.value}"

	class Meta:
		db_table = 'system_config'
		ordering = ['category', 'key']


class Notification(models.Model):
	TYPE_CHOICES = [
		('INFO', 'Info'),
		('REMINDER', 'Reminder'),
		('ALERT', 'Alert'),
		('SERVICE', 'Service'),
	]

	student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='notifications')
	title = models.CharField(max_length=150)
	message = models.TextField()
	notification_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='INFO')
	is_read = models.BooleanField(default=False)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.student.name} - {self.title}"

	class Meta:
		db_table = 'notifications'
		ordering = ['-created_at']


class AuditLog(models.Model):
	ACTOR_TYPE_CHOICES = [
		('USER', 'User'),
		('SCANNER', 'Scanner'),
		('SYSTEM', 'System'),
	]

	actor_type = models.CharField(max_length=10, choices=ACTOR_TYPE_CHOICES)
	actor_id = models.CharField(max_length=50, null=True, blank=True)
	event_type = models.CharField(max_length=50)
	payload = models.JSONField(default=dict)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.actor_type} - {self.event_type} - {self.created_at}"

	@classmethod
	def record(cls, event_type, payload=None, user=None):
		return cls.objects.create(
			actor_type='USER' if user is not None else 'SYSTEM',
			actor_id=str(user.pk) if user is not None else None,
			event_type=event_type,
			payload=payload or {},
		)

	class Meta:
		db_table = 'audit_logs'
