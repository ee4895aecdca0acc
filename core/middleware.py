from typing import Optional
from django.utils.deprecation import MiddlewareMixin
from django.db import connection
from django.http import HttpRequest
from core.models import Organization

PG_SETTING = "app.current_org"  # debe cuadrar con las políticas RLS de la BD

def resolve_org_from_path(path: str) -> Optional[str]:
    # Esperamos rutas tipo /api/v1/t/{org_slug}/...
    parts = [p for p in path.split("/") if p]
    try:
        idx = parts.index("t")
        return parts[idx + 1]
    except (ValueError, IndexError):
        return None

class TenantMiddleware(MiddlewareMixin):
    def process_request(self, request: HttpRequest):
        org_slug = resolve_org_from_path(request.path)
        request.org = None
        if org_slug:
            try:
                org = Organization.objects.only("id", "slug", "name").get(slug=org_slug)
            except Organization.DoesNotExist:
                return
            request.org = org
            # RLS solo existe en PostgreSQL (en SQLite local/tests no aplica)
            if connection.vendor == "postgresql":
                with connection.cursor() as c:
                    c.execute("SELECT set_config(%s, %s, true)", [PG_SETTING, str(org.id)])
