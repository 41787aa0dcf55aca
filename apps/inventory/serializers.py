from decimal import Decimal
from rest_framework import serializers
from .models import Alert, Category, GRN, GRNItem, Item, ItemBatch, POItem, PurchaseOrder, StockLedger, Unit, Vendor


class UnitSerializer(serializers.ModelSerializer):
	class Meta:
		model = Unit
		fields = ['id', 'name', 'symbol']


class CategorySerializer(serializers.ModelSerializer):
	class Meta:
		model = Category
		fields = ['id', 'name', 'description']


class VendorSerializer(serializers.ModelSerializer):
	class Meta:
		model = Vendor
		fields = ['id', 'name', 'gst_number', 'contact_person', 'phone', 'email', 'address',
				  'is_active', 'created_at']
		read_only_fields = ['created_at']


class ItemSerializer(serializers.ModelSerializer):
	unit_symbol = serializers.CharField(source='unit.symbol', read_only=True)
	category_name = serializers.CharField(source='category.name', read_only=True)
	vendor_name = serializers.CharField(source='vendor.name', read_only=True, default=None)
	stock_on_hand = serializers.SerializerMethodField()

	class Meta:
		model = Item
		fields = ['id', 'sku', 'name', 'unit', 'unit_symbol', 'category', 'category_name', 'vendor',
				  'vendor_name', 'moq', 'reorder_point', 'cost_per_unit', 'perishable', 'is_active',
				  'stock_on_hand', 'created_at']
		read_only_fields = ['created_at']

	def get_stock_on_hand(self, obj):
		levels = self.context.get('stock_levels')
		if levels is not None:
			return str(levels.get(obj.id, 0))
		return str(obj.stock_on_hand())


class ItemBatchSerializer(serializers.ModelSerializer):
	class Meta:
		model = ItemBatch
		fields = ['id', 'item', 'batch_no', 'qty_on_hand', 'unit_cost', 'mfg_date', 'exp_date', 'created_at']


class StockLedgerSerializer(serializers.ModelSerializer):
	batch_no = serializers.CharField(source='batch.batch_no', read_only=True, default=None)

	class Meta:
		model = StockLedger
		fields = ['id', 'item', 'batch', 'batch_no', 'txn_type', 'qty', 'ref_type', 'ref_id',
				  'created_by', 'created_at']


class POItemSerializer(serializers.ModelSerializer):
	item_name = serializers.CharField(source='item.name', read_only=True)

	class Meta:
		model = POItem
		fields = ['id', 'item', 'item_name', 'ordered_qty', 'received_qty', 'unit_cost']
		read_only_fields = ['received_qty']


class PurchaseOrderSerializer(serializers.ModelSerializer):
	vendor_name = serializers.CharField(source='vendor.name', read_only=True)
	items = POItemSerializer(many=True, read_only=True)

	class Meta:
		model = PurchaseOrder
		fields = ['id', 'po_no', 'vendor', 'vendor_name', 'status', 'subtotal', 'tax', 'total',
				  'notes', 'items', 'created_at']
		read_only_fields = fields


class POLineSerializer(serializers.Serializer):
	item = serializers.PrimaryKeyRelatedField(queryset=Item.objects.all())
	ordered_qty = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
	unit_cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))


class PurchaseOrderWriteSerializer(serializers.Serializer):
	vendor = serializers.PrimaryKeyRelatedField(queryset=Vendor.objects.all())
	notes = serializers.CharField(required=False, allow_blank=True, default='')
	items = POLineSerializer(many=True, allow_empty=False)


class GRNItemSerializer(serializers.ModelSerializer):
	item_name = serializers.CharField(source='item.name', read_only=True)

	class Meta:
		model = GRNItem
		fields = ['id', 'po_item', 'item', 'item_name', 'batch_no', 'received_qty', 'unit_cost',
				  'mfg_date', 'exp_date']


class GRNSerializer(serializers.ModelSerializer):
	po_no = serializers.CharField(source='po.po_no', read_only=True)
	vendor_name = serializers.CharField(source='po.vendor.name', read_only=True)
	items = GRNItemSerializer(many=True, read_only=True)

	class Meta:
		model = GRN
		fields = ['id', 'grn_no', 'po', 'po_no', 'vendor_name', 'invoice_no', 'notes', 'received_by',
				  'received_at', 'items']
		read_only_fields = fields


class GRNLineSerializer(serializers.Serializer):
	po_item = serializers.PrimaryKeyRelatedField(queryset=POItem.objects.select_related('item'))
	batch_no = serializers.CharField(max_length=50)
	received_qty = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
	mfg_date = serializers.DateField(required=False, allow_null=True)
	exp_date = serializers.DateField(required=False, allow_null=True)


class GRNWriteSerializer(serializers.Serializer):
	po = serializers.PrimaryKeyRelatedField(queryset=PurchaseOrder.objects.all())
	invoice_no = serializers.CharField(required=False, allow_blank=True, default='')
	notes = serializers.CharField(required=False, allow_blank=True, default='')
	items = GRNLineSerializer(many=True, allow_empty=False)


class IssueSerializer(serializers.Serializer):
	item = serializers.PrimaryKeyRelatedField(queryset=Item.objects.all())
	qty = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
	reference = serializers.CharField(required=False, allow_blank=True, default='')


class AlertSerializer(serializers.ModelSerializer):
	item_name = serializers.CharField(source='item.name', read_only=True)

	class Meta:
		model = Alert
		fields = ['id', 'item', 'item_name', 'alert_type', 'message', 'status', 'created_at', 'resolved_at']
		read_only_fields = fields
