from django.urls import path, include
from django.http import JsonResponse
from rest_framework.routers import DefaultRouter

from contacts.views import CustomerLedgerViewSet

router = DefaultRouter()
router.register(r'ledger', CustomerLedgerViewSet, basename='contacts-ledger')

def health(_request, org_slug=None):
    return JsonResponse({"app": "contacts", "status": "ok"})

urlpatterns = [
    path("health/", health, name="contacts-health"),
    path("", include(router.urls)),
]
