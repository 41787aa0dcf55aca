# Views for inventory app

from datetime import timedelta
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.conf import settings
from django.db.models import Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone

from apps.api.permissions import capability
from apps.core.config import load_meal_config
from apps.core.models import AuditLog
from .models import Alert, Category, GRN, Item, ItemBatch, PurchaseOrder, StockLedger, Unit, Vendor
from .serializers import (
    AlertSerializer, CategorySerializer, GRNSerializer, GRNWriteSerializer, IssueSerializer,
    ItemBatchSerializer, ItemSerializer, PurchaseOrderSerializer, PurchaseOrderWriteSerializer,
    StockLedgerSerializer, UnitSerializer, VendorSerializer
)
from .services import (
    create_purchase_order, generate_alerts, issue_stock, receive_goods,
    replace_purchase_order_lines, stock_levels
)

INVENTORY = capability('inventory.read', 'inventory.write')


@api_view(['GET', 'POST'])
@permission_classes([INVENTORY])
def items(request):
    if request.method == 'GET':
        queryset = Item.objects.select_related('unit', 'category', 'vendor')
        params = request.query_params
        if params.get('categoryId'):
            queryset = queryset.filter(category_id=params['categoryId'])
        if params.get('search'):
            queryset = queryset.filter(name__icontains=params['search'])
        serializer = ItemSerializer(queryset, many=True, context={'stock_levels': stock_levels()})
        return Response(serializer.data)

    serializer = ItemSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([INVENTORY])
def item_detail(request, item_id):
    item = get_object_or_404(Item, id=item_id)
    if request.method == 'GET':
        return Response(ItemSerializer(item).data)

    if request.method == 'DELETE':
        # soft delete, ledger history stays
        item.is_active = False
        item.save(update_fields=['is_active', 'updated_at'])
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = ItemSerializer(item, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([INVENTORY])
def item_batches(request, item_id):
    item = get_object_or_404(Item, id=item_id)
    batches = item.batches.filter(qty_on_hand__gt=0).order_by('exp_date', 'id')
    return Response(ItemBatchSerializer(batches, many=True).data)


@api_view(['GET'])
@permission_classes([INVENTORY])
def item_ledger(request, item_id):
    item = get_object_or_404(Item, id=item_id)
    entries = StockLedger.objects.filter(item=item).select_related('batch')[:200]
    return Response(StockLedgerSerializer(entries, many=True).data)


@api_view(['GET', 'POST'])
@permission_classes([INVENTORY])
def categories(request):
    if request.method == 'GET':
        return Response(CategorySerializer(Category.objects.order_by('name'), many=True).data)

    serializer = CategorySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes([INVENTORY])
def units(request):
    if request.method == 'GET':
        return Response(UnitSerializer(Unit.objects.order_by('name'), many=True).data)

    serializer = UnitSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes([INVENTORY])
def vendors(request):
    if request.method == 'GET':
        return Response(VendorSerializer(Vendor.objects.all(), many=True).data)

    serializer = VendorSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([INVENTORY])
def vendor_detail(request, vendor_id):
    vendor = get_object_or_404(Vendor, id=vendor_id)
    if request.method == 'GET':
        return Response(VendorSerializer(vendor).data)

    if request.method == 'DELETE':
        vendor.is_active = False
        vendor.save(update_fields=['is_active'])
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = VendorSerializer(vendor, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data)


@api_view(['GET', 'POST'])
@permission_classes([INVENTORY])
def purchase_orders(request):
    if request.method == 'GET':
        queryset = PurchaseOrder.objects.select_related('vendor').prefetch_related('items__item')
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params['status'])
        return Response(PurchaseOrderSerializer(queryset, many=True).data)

    serializer = PurchaseOrderWriteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    po = create_purchase_order(
        data['vendor'], data['items'], load_meal_config().default_tax_rate, request.user, data['notes']
    )
    AuditLog.record('PURCHASE_ORDER_CREATED', {'po_no': po.po_no, 'total': str(po.total)}, request.user)
    return Response(PurchaseOrderSerializer(po).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([INVENTORY])
def purchase_order_detail(request, po_id):
    po = get_object_or_404(PurchaseOrder.objects.select_related('vendor'), id=po_id)
    if request.method == 'GET':
        return Response(PurchaseOrderSerializer(po).data)

    if po.status != 'OPEN':
        return Response(
            {'error': f'{po.po_no} is {po.status.lower()} and can no longer be changed'},
            status=status.HTTP_400_BAD_REQUEST
        )

    if request.method == 'DELETE':
        po.status = 'CANCELLED'
        po.save(update_fields=['status', 'updated_at'])
        AuditLog.record('PURCHASE_ORDER_CANCELLED', {'po_no': po.po_no}, request.user)
        return Response(PurchaseOrderSerializer(po).data)

    serializer = PurchaseOrderWriteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    po.vendor = data['vendor']
    replace_purchase_order_lines(po, data['items'], load_meal_config().default_tax_rate, data['notes'])
    return Response(PurchaseOrderSerializer(po).data)


@api_view(['GET', 'POST'])
@permission_classes([INVENTORY])
def grns(request):
    if request.method == 'GET':
        queryset = GRN.objects.select_related('po__vendor').prefetch_related('items__item')
        return Response(GRNSerializer(queryset, many=True).data)

    serializer = GRNWriteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    grn = receive_goods(data['po'], data['items'], request.user, data['invoice_no'], data['notes'])
    AuditLog.record('GRN_CREATED', {'grn_no': grn.grn_no, 'po_no': grn.po.po_no}, request.user)
    return Response(GRNSerializer(grn).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([INVENTORY])
def grn_detail(request, grn_id):
    grn = get_object_or_404(GRN.objects.select_related('po__vendor'), id=grn_id)
    return Response(GRNSerializer(grn).data)


@api_view(['GET', 'POST'])
@permission_classes([INVENTORY])
def issues(request):
    """Stock issues to the kitchen"""
    if request.method == 'GET':
        entries = StockLedger.objects.filter(txn_type='ISSUE').select_related('batch')[:200]
        return Response(StockLedgerSerializer(entries, many=True).data)

    serializer = IssueSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    entries = issue_stock(data['item'], data['qty'], request.user, data['reference'])
    return Response(StockLedgerSerializer(entries, many=True).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([INVENTORY])
def alerts(request):
    queryset = Alert.objects.select_related('item').filter(status=request.query_params.get('status', 'OPEN'))
    return Response(AlertSerializer(queryset, many=True).data)


@api_view(['POST'])
@permission_classes([INVENTORY])
def alerts_generate(request):
    created = generate_alerts()
    return Response({'message': f'Generated {len(created)} alerts', 'alerts': AlertSerializer(created, many=True).data})


@api_view(['POST'])
@permission_classes([INVENTORY])
def alert_resolve(request, alert_id):
    alert = get_object_or_404(Alert, id=alert_id)
    if alert.status != 'RESOLVED':
        alert.status = 'RESOLVED'
        alert.resolved_at = timezone.now()
        alert.save(update_fields=['status', 'resolved_at'])
    return Response(AlertSerializer(alert).data)


@api_view(['GET'])
@permission_classes([INVENTORY])
def dashboard_overview(request):
    today = timezone.localdate()
    horizon = today + timedelta(days=settings.MESS_CONFIG['expiry_alert_days'])

    expiring = ItemBatch.objects.filter(
        qty_on_hand__gt=0, exp_date__gte=today, exp_date__lte=horizon
    ).select_related('item__unit').order_by('exp_date')
    in_stock = ItemBatch.objects.filter(qty_on_hand__gt=0).select_related('item__unit')
    top_items = sorted(
        (
            {
                'name': batch.item.name,
                'unit': batch.item.unit.symbol,
                'qty': str(batch.qty_on_hand),
                'unitCost': str(batch.unit_cost),
                'value': batch.qty_on_hand * batch.unit_cost,
            }
            for batch in in_stock
        ),
        key=lambda row: row['value'],
        reverse=True
    )[:5]
    for row in top_items:
        row['value'] = str(row['value'])

    recent = AuditLog.objects.order_by('-created_at')[:10]

    return Response({
        'stats': {
            'totalItems': Item.objects.filter(is_active=True).count(),
            'lowStockAlerts': Alert.objects.filter(status='OPEN', alert_type='LOW_STOCK').count(),
            'openPOs': PurchaseOrder.objects.filter(status__in=['OPEN', 'PARTIAL']).count(),
        },
        'recentActivities': [
            {'id': log.id, 'event': log.event_type, 'actorType': log.actor_type, 'createdAt': log.created_at}
            for log in recent
        ],
        'expiringItems': [
            {
                'itemName': batch.item.name,
                'batchNo': batch.batch_no,
                'qty': str(batch.qty_on_hand),
                'unit': batch.item.unit.symbol,
                'expDate': batch.exp_date,
            }
            for batch in expiring
        ],
        'topItems': top_items,
    })


@api_view(['GET'])
@permission_classes([INVENTORY])
def stock_analysis(request):
    category_stock = {}
    batches = ItemBatch.objects.filter(qty_on_hand__gt=0).select_related('item__category')
    for batch in batches:
        entry = category_stock.setdefault(batch.item.category.name, {'value': Decimal('0'), 'qty': Decimal('0')})
        entry['value'] += batch.qty_on_hand * batch.unit_cost
        entry['qty'] += batch.qty_on_hand

    total_value = sum((entry['value'] for entry in category_stock.values()), Decimal('0'))
    return Response({
        'categoryWiseStock': {
            name: {'value': str(entry['value']), 'qty': str(entry['qty'])} for name, entry in category_stock.items()
        },
        'totalStockValue': str(total_value),
        'totalItems': batches.values('item').distinct().count(),
        'totalQuantity': str(batches.aggregate(total=Sum('qty_on_hand'))['total'] or 0),
    })
