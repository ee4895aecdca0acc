from django.urls import path, include
from django.http import JsonResponse
from rest_framework.routers import DefaultRouter

from .views import InvoiceViewSet, PurchaseInvoiceViewSet

router = DefaultRouter()
router.register(r"invoices", InvoiceViewSet, basename="sales-inv")
router.register(r"purchase-invoices", PurchaseInvoiceViewSet, basename="sales-pinv")


def health(_request, org_slug=None):
    return JsonResponse({"app": "sales", "status": "ok"})

urlpatterns = [
    path("health/", health, name="sales-health"),
    path("", include(router.urls)),
]
