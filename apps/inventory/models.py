from decimal import Decimal
from django.conf import settings
from django.db import models
from django.db.models import Sum
from django.core.validators import MinValueValidator


class Unit(models.Model):
	name = models.CharField(max_length=50, unique=True)
	symbol = models.CharField(max_length=10)

	def __str__(self):
		return f"{self.name} ({self.symbol})"

	class Meta:
		db_table = 'units'


class Category(models.Model):
	name = models.CharField(max_length=100, unique=True)
	description = models.TextField(blank=True)

	def __str__(self):
		return self.name

	class Meta:
		db_table = 'categories'
		verbose_name_plural = 'categories'


class Vendor(models.Model):
	name = models.CharField(max_length=150, unique=True)
	gst_number = models.CharField(max_length=20, blank=True)
	contact_person = models.CharField(max_length=100, blank=True)
	phone = models.CharField(max_length=15, blank=True)
	email = models.EmailField(blank=True)
	address = models.TextField(blank=True)
	is_active = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return self.name

	class Meta:
		db_table = 'vendors'
		ordering = ['name']


class Item(models.Model):
	sku = models.CharField(max_length=30, unique=True)
	name = models.CharField(max_length=150)
	unit = models.ForeignKey(Unit, on_delete=models.PROTECT, related_name='items')
	category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='items')
	vendor = models.ForeignKey(Vendor, on_delete=models.SET_NULL, null=True, blank=True, related_name='items')
	moq = models.DecimalField(max_digits=12, decimal_places=3, default=0)
	reorder_point = models.DecimalField(max_digits=12, decimal_places=3, default=0)
	cost_per_unit = models.DecimalField(max_digits=10, decimal_places=2, default=0)
	perishable = models.BooleanField(default=False)
	is_active = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.name} ({self.sku})"

	def stock_on_hand(self):
		total = self.batches.aggregate(total=Sum('qty_on_hand'))['total']
		return total or Decimal('0')

	class Meta:
		db_table = 'items'
		ordering = ['name']


class ItemBatch(models.Model):
	item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name='batches')
	batch_no = models.CharField(max_length=50)
	qty_on_hand = models.DecimalField(max_digits=12, decimal_places=3, default=0)
	unit_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0)
	mfg_date = models.DateField(null=True, blank=True)
	exp_date = models.DateField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.item.name} - {self.batch_no}"

	class Meta:
		db_table = 'item_batches'
		unique_together = ['item', 'batch_no']


class StockLedger(models.Model):
	TXN_TYPE_CHOICES = [
		('RECEIPT', 'Receipt'),
		('ISSUE', 'Issue'),
		('ADJUSTMENT', 'Adjustment'),
	]

	item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name='ledger_entries')
	batch = models.ForeignKey(ItemBatch, on_delete=models.SET_NULL, null=True, blank=True)
	txn_type = models.CharField(max_length=12, choices=TXN_TYPE_CHOICES)
	qty = models.DecimalField(max_digits=12, decimal_places=3)
	ref_type = models.CharField(max_length=20, blank=True)
	ref_id = models.CharField(max_length=50, blank=True)
	created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.txn_type} {self.qty} {self.item.name}"

	class Meta:
		db_table = 'stock_ledger'
		ordering = ['-created_at', '-id']


class PurchaseOrder(models.Model):
	STATUS_CHOICES = [
		('OPEN', 'Open'),
		('PARTIAL', 'Partially Received'),
		('CLOSED', 'Closed'),
		('CANCELLED', 'Cancelled'),
	]

	po_no = models.CharField(max_length=20, unique=True)
	vendor = models.ForeignKey(Vendor, on_delete=models.PROTECT, related_name='purchase_orders')
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='OPEN')
	subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
	tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
	total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
	notes = models.TextField(blank=True)
	created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.po_no} - {self.vendor.name}"

	class Meta:
		db_table = 'purchase_orders'
		ordering = ['-created_at', '-id']


class POItem(models.Model):
	po = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
	item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='po_items')
	ordered_qty = models.DecimalField(max_digits=12, decimal_places=3, validators=[MinValueValidator(0)])
	received_qty = models.DecimalField(max_digits=12, decimal_places=3, default=0)
	unit_cost = models.DecimalField(max_digits=10, decimal_places=2)

	@property
	def line_total(self):
		return self.ordered_qty * self.unit_cost

	def __str__(self):
		return f"{self.po.po_no} - {self.item.name}"

	class Meta:
		db_table = 'po_items'


class GRN(models.Model):
	grn_no = models.CharField(max_length=20, unique=True)
	po = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name='grns')
	invoice_no = models.CharField(max_length=50, blank=True)
	notes = models.TextField(blank=True)
	received_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
	received_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.grn_no} ({self.po.po_no})"

	class Meta:
		db_table = 'grns'
		ordering = ['-received_at', '-id']


class GRNItem(models.Model):
	grn = models.ForeignKey(GRN, on_delete=models.CASCADE, related_name='items')
	po_item = models.ForeignKey(POItem, on_delete=models.PROTECT, related_name='grn_items')
	item = models.ForeignKey(Item, on_delete=models.PROTECT)
	batch_no = models.CharField(max_length=50)
	received_qty = models.DecimalField(max_digits=12, decimal_places=3)
	unit_cost = models.DecimalField(max_digits=10, decimal_places=2)
	mfg_date = models.DateField(null=True, blank=True)
	exp_date = models.DateField(null=True, blank=True)

	class Meta:
		db_table = 'grn_items'


class Alert(models.Model):
	TYPE_CHOICES = [
		('LOW_STOCK', 'Low Stock'),
		('EXPIRY', 'Expiry'),
	]

	STATUS_CHOICES = [
		('OPEN', 'Open'),
		('RESOLVED', 'Resolved'),
	]

	item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name='alerts')
	alert_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
	message = models.CharField(max_length=255)
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='OPEN')
	created_at = models.DateTimeField(auto_now_add=True)
	resolved_at = models.DateTimeField(null=True, blank=True)

	def __str__(self):
		return f"{self.alert_type} - {self.item.name} - {self.status}"

	class Meta:
		db_table = 'alerts'
		ordering = ['-created_at']
