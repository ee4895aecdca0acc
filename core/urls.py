from django.urls import path
from django.http import JsonResponse
from core.views import PingTenantView, OrgSalesSettingsView

def health(_request, org_slug=None):
    return JsonResponse({"app": "core", "status": "ok"})

urlpatterns = [
    path("health/", health, name="core-health"),
    path("ping", PingTenantView.as_view(), name="core-ping"),
    path("settings/sales/", OrgSalesSettingsView.as_view(), name="core-sales-settings"),
]
