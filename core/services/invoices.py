"""
Pharmacy sales invoices.

Line maths: ``subtotal = mrp * qty - discount``, ``tax = subtotal * rate``
and ``total = subtotal + tax``, all rounded to cents.  Creating an
invoice takes the sold units out of stock (which may trigger an
auto-restock) and books the grand total as pharmacy revenue.
"""
from __future__ import annotations

import io
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.utils import timezone
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from core.exceptions import ApiError
from core.models import FinanceEntry, InventoryItem, PharmacyInvoice, PharmacyInvoiceItem
from core.services.activity import create_activity
from core.services.inventory import decrement_stock

CENT = Decimal('0.01')
DEFAULT_TAX_RATE = Decimal('18')


def _d(value, default=Decimal('0')) -> Decimal:
    if value in (None, ''):
        return default
    return Decimal(str(value))


def _q(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price_line(mrp: Decimal, quantity: int, discount_percent: Decimal, tax_rate: Decimal) -> dict:
    gross = mrp * quantity
    discount = _q(gross * discount_percent / 100)
    subtotal = _q(gross - discount)
    tax = _q(subtotal * tax_rate / 100)
    return {'discount_amount': discount, 'subtotal': subtotal, 'tax_amount': tax, 'total': subtotal + tax}


def next_invoice_number(pharmacy_id) -> str:
    today = timezone.localdate()
    prefix = f"INV-{pharmacy_id}-{today:%Y%m%d}-"
    count = PharmacyInvoice.objects.filter(invoice_number__startswith=prefix).count()
    return f"{prefix}{count + 1:04d}"


def serialize_invoice(inv: PharmacyInvoice) -> dict:
    return {
        'id': inv.id,
        'invoiceNumber': inv.invoice_number,
        'pharmacyId': inv.pharmacy_id,
        'patientId': inv.patient_id,
        'orderId': inv.order_id,
        'invoiceType': inv.invoice_type,
        'subtotal': float(inv.subtotal),
        'totalDiscount': float(inv.total_discount),
        'totalTax': float(inv.total_tax),
        'grandTotal': float(inv.grand_total),
        'paymentMethod': inv.payment_method,
        'paymentStatus': inv.payment_status,
        'paidAmount': float(inv.paid_amount),
        'billDate': inv.bill_date.isoformat() if inv.bill_date else None,
        'notes': inv.notes,
        'items': [
            {
                'inventoryItemId': i.inventory_item_id,
                'medicineName': i.medicine_name,
                'brandName': i.brand_name or None,
                'composition': i.composition or None,
                'batchNumber': i.batch_number,
                'quantity': i.quantity,
                'mrp': float(i.mrp),
                'discount': float(i.discount_percent),
                'discountAmount': float(i.discount_amount),
                'taxRate': float(i.tax_rate),
                'taxAmount': float(i.tax_amount),
                'subtotal': float(i.subtotal),
                'total': float(i.total),
            }
            for i in inv.items.all()
        ],
    }


@transaction.atomic
def create_invoice(*, pharmacy_id, items: list[dict], user=None, patient_id=None, order_id=None,
                   invoice_type: str = 'WALK_IN', payment_method: str = '', payment_status: str = 'PENDING',
                   paid_amount=None, bill_date=None, notes: str = '') -> PharmacyInvoice:
    if not items:
        raise ApiError('At least one invoice item is required')
    invoice = PharmacyInvoice.objects.create(
        invoice_number=next_invoice_number(pharmacy_id),
        pharmacy_id=pharmacy_id,
        patient_id=patient_id,
        order_id=order_id,
        invoice_type=invoice_type,
        payment_method=payment_method or '',
        payment_status=payment_status,
        paid_amount=_d(paid_amount),
        bill_date=bill_date or timezone.now(),
        notes=notes or '',
        created_by=user,
    )
    subtotal = discount = tax = grand = Decimal('0')
    for line in items:
        inv_item = InventoryItem.objects.filter(pk=line['inventoryItemId']).first()
        if inv_item is None:
            raise ApiError(f"Inventory item not found: {line['inventoryItemId']}", 404)
        if inv_item.pharmacy_id != int(pharmacy_id):
            raise ApiError(f"Inventory item {inv_item.id} belongs to another pharmacy")
        qty = int(line['quantity'])
        mrp = _d(line.get('mrp'), inv_item.selling_price)
        pct = _d(line.get('discount'))
        rate = _d(line.get('taxRate'), DEFAULT_TAX_RATE)
        priced = price_line(mrp, qty, pct, rate)
        decrement_stock(inv_item.id, qty, strict=True)
        PharmacyInvoiceItem.objects.create(
            invoice=invoice,
            inventory_item=inv_item,
            medicine_name=inv_item.medicine_name,
            brand_name=inv_item.brand_name,
            composition=inv_item.composition,
            batch_number=inv_item.batch_number,
            quantity=qty,
            purchase_price=inv_item.purchase_price,
            mrp=mrp,
            discount_percent=pct,
            tax_rate=rate,
            **priced,
        )
        subtotal += priced['subtotal']
        discount += priced['discount_amount']
        tax += priced['tax_amount']
        grand += priced['total']

    invoice.subtotal, invoice.total_discount, invoice.total_tax, invoice.grand_total = subtotal, discount, tax, grand
    invoice.save(update_fields=['subtotal', 'total_discount', 'total_tax', 'grand_total'])

    FinanceEntry.objects.create(
        type='PHARMACY_SALE',
        amount=grand,
        description=f"Invoice {invoice.invoice_number}",
        occurred_at=invoice.bill_date,
        pharmacy_id=pharmacy_id,
        patient_id=patient_id,
        metadata={'invoiceId': invoice.id},
    )
    create_activity(
        'PHARMACY_INVOICE_CREATED',
        'Pharmacy invoice created',
        f"Invoice {invoice.invoice_number} created for {grand}",
        user_id=getattr(user, 'id', None),
        pharmacy_id=pharmacy_id,
        patient_id=patient_id,
        metadata={'invoiceId': invoice.id, 'invoiceNumber': invoice.invoice_number, 'grandTotal': float(grand)},
    )
    return invoice


@transaction.atomic
def update_payment(invoice: PharmacyInvoice, *, user=None, payment_status=None, paid_amount=None,
                   payment_method=None) -> PharmacyInvoice:
    invoice = PharmacyInvoice.objects.select_for_update().get(pk=invoice.pk)
    if payment_status:
        invoice.payment_status = payment_status
        if payment_status == 'PAID' and paid_amount is None:
            paid_amount = invoice.grand_total
    if paid_amount is not None:
        if _d(paid_amount) > invoice.grand_total:
            raise ApiError('paidAmount exceeds the invoice total')
        invoice.paid_amount = _d(paid_amount)
    if payment_method:
        invoice.payment_method = payment_method
    invoice.save(update_fields=['payment_status', 'paid_amount', 'payment_method'])
    create_activity(
        'PHARMACY_INVOICE_PAYMENT_UPDATED',
        'Invoice payment updated',
        f"Invoice {invoice.invoice_number} is {invoice.payment_status} ({invoice.paid_amount} paid)",
        user_id=getattr(user, 'id', None),
        pharmacy_id=invoice.pharmacy_id,
        patient_id=invoice.patient_id,
        metadata={'invoiceId': invoice.id, 'paymentStatus': invoice.payment_status,
                  'paidAmount': float(invoice.paid_amount)},
    )
    return invoice


def render_invoice_pdf(invoice: PharmacyInvoice) -> bytes:
    """A4 bill with pharmacy and patient headers, one row per line and the tax breakup."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    w, h = A4
    y = h - 40

    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, "PHARMACY INVOICE")
    c.setFont("Helvetica", 9)
    c.drawRightString(w - 40, y, f"Invoice #: {invoice.invoice_number}")
    y -= 14
    c.drawRightString(w - 40, y, f"Date: {invoice.bill_date:%d-%m-%Y}")

    y -= 26
    pharmacy = invoice.pharmacy
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, pharmacy.name)
    c.setFont("Helvetica", 9)
    for text in (pharmacy.address, pharmacy.phone):
        if text:
            y -= 13
            c.drawString(40, y, text)
    if invoice.patient_id:
        patient = invoice.patient
        y -= 20
        c.drawString(40, y, f"Bill to: {patient.display_name}")
        if patient.phone:
            c.drawString(320, y, f"Phone: {patient.phone}")

    y -= 28
    c.setFont("Helvetica-Bold", 9)
    for x, label in ((40, "Medicine"), (230, "Batch"), (310, "Qty"), (350, "MRP"), (410, "Disc"), (460, "Tax")):
        c.drawString(x, y, label)
    c.drawRightString(w - 40, y, "Total")
    c.setFont("Helvetica", 9)
    for line in invoice.items.all():
        y -= 16
        if y < 80:
            c.showPage()
            c.setFont("Helvetica", 9)
            y = h - 40
        name = line.medicine_name if not line.brand_name else f"{line.brand_name} ({line.medicine_name})"
        c.drawString(40, y, name[:36])
        c.drawString(230, y, line.batch_number[:14])
        c.drawString(310, y, str(line.quantity))
        c.drawString(350, y, f"{line.mrp:.2f}")
        c.drawString(410, y, f"{line.discount_amount:.2f}")
        c.drawString(460, y, f"{line.tax_amount:.2f}")
        c.drawRightString(w - 40, y, f"{line.total:.2f}")

    y -= 28
    for label, amount in (("Subtotal", invoice.subtotal), ("Discount", invoice.total_discount),
                          ("Tax", invoice.total_tax)):
        c.drawRightString(w - 120, y, label)
        c.drawRightString(w - 40, y, f"{amount:.2f}")
        y -= 14
    c.setFont("Helvetica-Bold", 11)
    c.drawRightString(w - 120, y - 4, "GRAND TOTAL")
    c.drawRightString(w - 40, y - 4, f"{invoice.grand_total:.2f}")
    y -= 24
    c.setFont("Helvetica", 9)
    c.drawString(40, y, f"Payment: {invoice.payment_status}"
                        f"{' via ' + invoice.payment_method if invoice.payment_method else ''}"
                        f", paid {invoice.paid_amount:.2f}")
    c.save()
    return buf.getvalue()
