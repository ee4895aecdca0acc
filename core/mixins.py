# core/mixins.py
from django.shortcuts import get_object_or_404
from django.utils.functional import cached_property
from rest_framework import viewsets
from rest_framework.exceptions import ValidationError

from core.models import Organization, get_sales_settings


class OrgScopedViewSetMixin:
    """
    - Filtra queryset por organización.
    - Expone self.org (y self.sales_settings) a las acciones.
    - Añade 'org' al serializer_context.
    Las escrituras del ledger no pasan por perform_create/perform_update:
    van siempre por los servicios de sales.
    """
    org_lookup = "org"
    queryset = None  # obligatorio en subclases

    @cached_property
    def org(self):
        # 1) middleware
        o = getattr(self.request, "org", None)
        if o:
            return o
        # 2) fallback por slug en la URL
        slug = self.kwargs.get("org_slug")
        if slug:
            return get_object_or_404(Organization, slug=slug)
        raise ValidationError("Organización no resuelta (falta org_slug o request.org)")

    @cached_property
    def sales_settings(self):
        return get_sales_settings(self.org)

    def get_queryset(self):
        assert self.queryset is not None, f"{self.__class__.__name__} debe definir 'queryset'"
        return self.queryset.filter(**{self.org_lookup: self.org})

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["org"] = self.org
        return ctx


class OrgScopedReadOnlyViewSet(OrgScopedViewSetMixin, viewsets.ReadOnlyModelViewSet):
    pass
