# inventory/views.py
from django.db.models import Q
from rest_framework import viewsets
from rest_framework.response import Response

from .models import Product, StockMove
from .serializers import ProductSerializer, StockMoveSerializer
from . import services

from core.mixins import OrgScopedViewSetMixin, OrgScopedReadOnlyViewSet

class ProductViewSet(OrgScopedReadOnlyViewSet):
    serializer_class = ProductSerializer
    queryset = Product.objects.select_related("stock_record").all()

    def get_queryset(self):
        qs = super().get_queryset()
        q = self.request.query_params.get("q")
        barcode = self.request.query_params.get("barcode")
        in_stock = self.request.query_params.get("in_stock")

        if q:
            qs = qs.filter(Q(name__icontains=q) | Q(sku__icontains=q))
        if barcode:
            qs = qs.filter(barcode=barcode)
        if in_stock in ("1","true","True"):
            qs = qs.filter(stock_record__stock__gt=0)
        return qs

class StockViewSet(OrgScopedViewSetMixin, viewsets.GenericViewSet):
    """
    Lectura de existencias. El stock nunca se escribe desde aquí:
    solo lo mueven los commits de facturas y devoluciones.
    """
    queryset = Product.objects.all()
    lookup_value_regex = r"\d+"

    def retrieve(self, request, pk=None, *args, **kwargs):
        return Response({"product": int(pk), "stock": services.get_stock(self.org, pk)})

class StockMoveViewSet(OrgScopedReadOnlyViewSet):
    serializer_class = StockMoveSerializer
    queryset = StockMove.objects.all()

    def get_queryset(self):
        qs = super().get_queryset()
        product = self.request.query_params.get("product")
        if product:
            qs = qs.filter(product_id=product)
        return qs
