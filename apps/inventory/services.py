import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from apps.core.exceptions import MessError
from .models import Alert, GRN, GRNItem, Item, ItemBatch, POItem, PurchaseOrder, StockLedger

logger = logging.getLogger(__name__)


class InsufficientStock(MessError):
    def __init__(self, item, requested, available):
        self.item = item
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient stock for {item.name}: requested {requested}, available {available}")


class ReceiptError(MessError):
    """A goods receipt line does not match its purchase order"""


def next_number(model, field, prefix):
    """PO000001-style sequence based on the highest existing number"""
    last = model.objects.filter(**{f'{field}__startswith': prefix}).order_by(f'-{field}').values_list(field, flat=True).first()
    sequence = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{sequence:06d}"


def calculate_totals(lines, tax_rate):
    subtotal = sum((Decimal(line['ordered_qty']) * Decimal(line['unit_cost']) for line in lines), Decimal('0'))
    tax = (subtotal * Decimal(tax_rate) / Decimal(100)).quantize(Decimal('0.01'))
    subtotal = subtotal.quantize(Decimal('0.01'))
    return subtotal, tax, subtotal + tax


@transaction.atomic
def create_purchase_order(vendor, lines, tax_rate, user=None, notes=''):
    """lines: [{'item': Item, 'ordered_qty': Decimal, 'unit_cost': Decimal}]"""
    subtotal, tax, total = calculate_totals(lines, tax_rate)
    po = PurchaseOrder.objects.create(
        po_no=next_number(PurchaseOrder, 'po_no', 'PO'),
        vendor=vendor,
        subtotal=subtotal,
        tax=tax,
        total=total,
        notes=notes,
        created_by=user,
    )
    POItem.objects.bulk_create([
        POItem(po=po, item=line['item'], ordered_qty=line['ordered_qty'], unit_cost=line['unit_cost'])
        for line in lines
    ])
    logger.info(f"Created {po.po_no} for {vendor.name}, total {total}")
    return po


@transaction.atomic
def replace_purchase_order_lines(po, lines, tax_rate, notes=None):
    po.items.all().delete()
    POItem.objects.bulk_create([
        POItem(po=po, item=line['item'], ordered_qty=line['ordered_qty'], unit_cost=line['unit_cost'])
        for line in lines
    ])
    po.subtotal, po.tax, po.total = calculate_totals(lines, tax_rate)
    if notes is not None:
        po.notes = notes
    po.save()
    return po


def refresh_po_status(po):
    items = list(po.items.all())
    if items and all(item.received_qty >= item.ordered_qty for item in items):
        po.status = 'CLOSED'
    elif any(item.received_qty > 0 for item in items):
        po.status = 'PARTIAL'
    po.save(update_fields=['status', 'updated_at'])
    return po.status


@transaction.atomic
def receive_goods(po, lines, user=None, invoice_no='', notes=''):
    """
    Record a goods receipt against a purchase order.

    Each line upserts the item batch, writes a RECEIPT ledger entry and bumps
    the PO line's received quantity; the PO then moves to PARTIAL or CLOSED.
    Unit cost always comes from the PO line.
    """
    po = PurchaseOrder.objects.select_for_update().get(pk=po.pk)
    if po.status in ('CLOSED', 'CANCELLED'):
        raise ReceiptError(f"{po.po_no} is {po.status.lower()} and cannot receive goods")

    grn = GRN.objects.create(
        grn_no=next_number(GRN, 'grn_no', 'GRN'),
        po=po,
        invoice_no=invoice_no,
        notes=notes,
        received_by=user,
    )

    for line in lines:
        po_item = line['po_item']
        if po_item.po_id != po.pk:
            raise ReceiptError(f"Line for {po_item.item.name} does not belong to {po.po_no}")
        qty = Decimal(line['received_qty'])

        GRNItem.objects.create(
            grn=grn,
            po_item=po_item,
            item=po_item.item,
            batch_no=line['batch_no'],
            received_qty=qty,
            unit_cost=po_item.unit_cost,
            mfg_date=line.get('mfg_date'),
            exp_date=line.get('exp_date'),
        )

        batch, created = ItemBatch.objects.select_for_update().get_or_create(
            item=po_item.item,
            batch_no=line['batch_no'],
            defaults={
                'qty_on_hand': qty,
                'unit_cost': po_item.unit_cost,
                'mfg_date': line.get('mfg_date'),
                'exp_date': line.get('exp_date'),
            }
        )
        if not created:
            ItemBatch.objects.filter(pk=batch.pk).update(qty_on_hand=F('qty_on_hand') + qty)

        StockLedger.objects.create(
            item=po_item.item,
            batch=batch,
            txn_type='RECEIPT',
            qty=qty,
            ref_type='GRN',
            ref_id=grn.grn_no,
            created_by=user,
        )
        POItem.objects.filter(pk=po_item.pk).update(received_qty=F('received_qty') + qty)

    refresh_po_status(po)
    logger.info(f"{grn.grn_no} received against {po.po_no}, PO now {po.status}")
    return grn


@transaction.atomic
def issue_stock(item, qty, user=None, reference=''):
    """Consume stock earliest expiry first; batches without expiry go last"""
    qty = Decimal(qty)
    batches = list(
        ItemBatch.objects.select_for_update()
        .filter(item=item, qty_on_hand__gt=0)
        .order_by(F('exp_date').asc(nulls_last=True), 'created_at', 'id')
    )
    available = sum((batch.qty_on_hand for batch in batches), Decimal('0'))
    if available < qty:
        raise InsufficientStock(item, qty, available)

    remaining = qty
    entries = []
    for batch in batches:
        if remaining <= 0:
            break
        take = min(batch.qty_on_hand, remaining)
        batch.qty_on_hand -= take
        batch.save(update_fields=['qty_on_hand'])
        entries.append(StockLedger.objects.create(
            item=item,
            batch=batch,
            txn_type='ISSUE',
            qty=-take,
            ref_type='ISSUE',
            ref_id=reference,
            created_by=user,
        ))
        remaining -= take

    return entries


def stock_levels():
    """item id -> quantity on hand"""
    rows = ItemBatch.objects.values('item_id').annotate(total=Sum('qty_on_hand'))
    return {row['item_id']: row['total'] or Decimal('0') for row in rows}


def generate_alerts(today=None):
    """Open LOW_STOCK and EXPIRY alerts; an item never has two OPEN alerts of the same type"""
    today = today or timezone.localdate()
    horizon = today + timedelta(days=settings.MESS_CONFIG['expiry_alert_days'])
    levels = stock_levels()
    open_alerts = set(Alert.objects.filter(status='OPEN').values_list('item_id', 'alert_type'))

    created = []
    for item in Item.objects.filter(is_active=True).select_related('unit'):
        on_hand = levels.get(item.id, Decimal('0'))
        if on_hand <= item.reorder_point and (item.id, 'LOW_STOCK') not in open_alerts:
            created.append(Alert(
                item=item,
                alert_type='LOW_STOCK',
                message=f"{item.name} stock is at or below reorder point ({on_hand} {item.unit.symbol} remaining)",
            ))
            open_alerts.add((item.id, 'LOW_STOCK'))

        if (item.id, 'EXPIRY') in open_alerts:
            continue
        expiring = item.batches.filter(
            qty_on_hand__gt=0, exp_date__isnull=False, exp_date__gt=today, exp_date__lte=horizon
        ).order_by('exp_date').first()
        if expiring is not None:
            created.append(Alert(
                item=item,
                alert_type='EXPIRY',
                message=f"{item.name} (Batch: {expiring.batch_no}) expires on {expiring.exp_date}",
            ))
            open_alerts.add((item.id, 'EXPIRY'))

    Alert.objects.bulk_create(created)
    logger.info(f"Generated {len(created)} stock alerts")
    return created
