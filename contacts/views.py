# contacts/views.py
from django.db.models import Q

from core.mixins import OrgScopedReadOnlyViewSet
from .models import CustomerLedger
from .serializers import CustomerLedgerSerializer


class CustomerLedgerViewSet(OrgScopedReadOnlyViewSet):
    """
    Saldos por contraparte. Solo lectura: los saldos los mueven
    los commits de ventas/compras y devoluciones.
    """
    serializer_class = CustomerLedgerSerializer
    queryset = CustomerLedger.objects.all()
    lookup_field = "identifier"
    lookup_value_regex = r"[^/]+"

    def get_queryset(self):
        qs = super().get_queryset()
        q = self.request.query_params.get("q")
        if q:
            qs = qs.filter(Q(name__icontains=q) | Q(identifier__icontains=q))
        return qs
