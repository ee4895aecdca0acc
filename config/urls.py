from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
import os

urlpatterns = [
    # Multi-tenant
    path("api/v1/t/<slug:org_slug>/core/", include("core.urls")),
    path("api/v1/t/<slug:org_slug>/contacts/", include("contacts.urls")),
    path("api/v1/t/<slug:org_slug>/inventory/", include("inventory.urls")),
    path("api/v1/t/<slug:org_slug>/sales/", include("sales.urls")),
]

# Admin solo si DEBUG o si lo fuerzas por env (por si algún día lo necesitas en prod)
if settings.DEBUG or os.getenv("ENABLE_ADMIN", "False") == "True":
    urlpatterns.insert(0, path("admin/", admin.site.urls))

# Docs solo en desarrollo
if settings.DEBUG:
    urlpatterns += [
        path("api/v1/schema/", SpectacularAPIView.as_view(), name="schema"),
        path("api/v1/docs/", SpectacularSwaggerView.as_view(url_name="schema")),
    ]
