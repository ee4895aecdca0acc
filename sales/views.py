# sales/views.py
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response

from core.mixins import OrgScopedReadOnlyViewSet
from .models import Invoice
from .serializers import (
    InvoiceDraftSerializer,
    InvoiceSerializer,
    PricingRequestSerializer,
    ReplaceLinesSerializer,
    ReturnRequestSerializer,
    ReturnResultSerializer,
)
from .services_invoice import commit_invoice, compute_draft, get_invoice, replace_lines
from .services_return import AWAITING_PAYMENT, commit_return, preview_return


class InvoiceViewSet(OrgScopedReadOnlyViewSet):
    """
    Facturas de venta. Todas las escrituras pasan por los servicios de commit;
    aquí solo se valida la forma del cuerpo.
    """
    kind = Invoice.KIND_SALE
    serializer_class = InvoiceSerializer
    queryset = Invoice.objects.prefetch_related("lines", "return_history")
    filterset_fields = ["status", "number", "party_identifier"]

    def get_queryset(self):
        return super().get_queryset().filter(kind=self.kind)

    def create(self, request, *args, **kwargs):
        body = InvoiceDraftSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        invoice_id, number = commit_invoice(self.org, kind=self.kind, user=request.user, **body.validated_data)
        return Response({"invoice_id": invoice_id, "sequence_number": number}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"])
    def pricing(self, request, *args, **kwargs):
        """Totales en vivo del carrito, con el mismo cálculo que el commit. No escribe nada."""
        body = PricingRequestSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        draft = compute_draft(self.org, kind=self.kind, sales_settings=self.sales_settings, **body.validated_data)
        return Response(draft, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def replace_lines(self, request, pk=None, *args, **kwargs):
        body = ReplaceLinesSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        invoice = replace_lines(self.org, pk, kind=self.kind, user=request.user, **body.validated_data)
        invoice = get_invoice(self.org, invoice.id, kind=self.kind)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="returns/preview")
    def returns_preview(self, request, pk=None, *args, **kwargs):
        body = ReturnRequestSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        data = dict(body.validated_data)
        data.pop("settlement", None)
        result = preview_return(self.org, pk, kind=self.kind, **data)
        return Response(ReturnResultSerializer(result).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def returns(self, request, pk=None, *args, **kwargs):
        body = ReturnRequestSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        result = commit_return(self.org, pk, kind=self.kind, user=request.user, **body.validated_data)
        code = status.HTTP_202_ACCEPTED if result["state"] == AWAITING_PAYMENT else status.HTTP_201_CREATED
        return Response(ReturnResultSerializer(result).data, status=code)


class PurchaseInvoiceViewSet(InvoiceViewSet):
    kind = Invoice.KIND_PURCHASE
