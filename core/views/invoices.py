"""
Pharmacy sales invoices.
"""
from __future__ import annotations

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Order, Pharmacy, PharmacyInvoice, User
from core.permissions import IsPharmacyOrReadOnly, IsPharmacyRole, can_access_pharmacy, scoped_pharmacy_id
from core.serializers.pharmacy import InvoiceCreateSerializer, InvoicePaymentSerializer, InvoiceQuerySerializer
from core.services.invoices import create_invoice, render_invoice_pdf, serialize_invoice, update_payment
from core.views.common import created, fail, ok, paginate


def _visible(user):
    qs = PharmacyInvoice.objects.prefetch_related('items')
    if user.role == User.SUPER_ADMIN:
        return qs
    if user.role == User.PHARMACY_STAFF:
        pinned = scoped_pharmacy_id(user)
        return qs.filter(pharmacy_id=pinned) if pinned else qs.none()
    if user.role == User.PATIENT:
        return qs.filter(patient=user)
    return qs.none()


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsPharmacyOrReadOnly])
def invoice_collection(request):
    if request.method == 'POST':
        s = InvoiceCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        if not Pharmacy.objects.filter(pk=vd['pharmacyId']).exists():
            return fail('Pharmacy not found', status.HTTP_404_NOT_FOUND)
        if not can_access_pharmacy(request.user, vd['pharmacyId']):
            return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
        if vd.get('patientId') and not User.objects.filter(pk=vd['patientId'], role=User.PATIENT).exists():
            return fail('Patient not found', status.HTTP_404_NOT_FOUND)
        if vd.get('orderId') and not Order.objects.filter(pk=vd['orderId'], pharmacy_id=vd['pharmacyId']).exists():
            return fail('Order not found', status.HTTP_404_NOT_FOUND)
        invoice = create_invoice(
            pharmacy_id=vd['pharmacyId'],
            items=vd['items'],
            user=request.user,
            patient_id=vd.get('patientId'),
            order_id=vd.get('orderId'),
            invoice_type=vd['invoiceType'],
            payment_method=vd.get('paymentMethod') or '',
            payment_status=vd['paymentStatus'],
            paid_amount=vd.get('paidAmount'),
            bill_date=vd.get('billDate'),
            notes=vd.get('notes') or '',
        )
        invoice = _visible(request.user).get(pk=invoice.pk)
        return created(serialize_invoice(invoice))

    q = InvoiceQuerySerializer(data={k: v for k, v in request.query_params.items() if v})
    q.is_valid(raise_exception=True)
    qp = q.validated_data
    qs = _visible(request.user)
    if qp.get('pharmacyId'):
        qs = qs.filter(pharmacy_id=qp['pharmacyId'])
    if qp.get('patientId'):
        qs = qs.filter(patient_id=qp['patientId'])
    if qp.get('from'):
        qs = qs.filter(bill_date__date__gte=qp['from'])
    if qp.get('to'):
        qs = qs.filter(bill_date__date__lte=qp['to'])
    rows, pagination = paginate(qs.order_by('-bill_date'), request)
    return ok([serialize_invoice(i) for i in rows], pagination=pagination)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def invoice_detail(request, pk):
    invoice = _visible(request.user).filter(pk=pk).first()
    if not invoice:
        return fail('Invoice not found', status.HTTP_404_NOT_FOUND)
    return ok(serialize_invoice(invoice))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def invoice_payment(request, pk):
    invoice = _visible(request.user).filter(pk=pk).first()
    if not invoice:
        return fail('Invoice not found', status.HTTP_404_NOT_FOUND)
    s = InvoicePaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    invoice = update_payment(invoice, user=request.user, payment_status=vd.get('paymentStatus'),
                             paid_amount=vd.get('paidAmount'), payment_method=vd.get('paymentMethod'))
    return ok(serialize_invoice(_visible(request.user).get(pk=invoice.pk)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def invoice_pdf(request, pk):
    invoice = _visible(request.user).select_related('pharmacy', 'patient').filter(pk=pk).first()
    if not invoice:
        return fail('Invoice not found', status.HTTP_404_NOT_FOUND)
    resp = HttpResponse(render_invoice_pdf(invoice), content_type='application/pdf')
    resp['Content-Disposition'] = f'attachment; filename="invoice-{invoice.invoice_number}.pdf"'
    return resp
