from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status
from core.models import get_sales_settings
from core.serializers import OrganizationSalesSettingsSerializer


class PingTenantView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, org_slug: str):
        if not getattr(request, "org", None) or request.org.slug != org_slug:
            return Response({"detail": "Organización no válida"}, status=status.HTTP_400_BAD_REQUEST)
        return Response({
            "ok": True,
            "org": {"id": str(request.org.id), "slug": request.org.slug, "name": request.org.name}
        })


class OrgSalesSettingsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, org_slug: str):
        org = getattr(request, "org", None)
        if not org or org.slug != org_slug:
            return Response({"detail": "Organización no válida"}, status=status.HTTP_400_BAD_REQUEST)

        settings_obj = get_sales_settings(org)
        return Response(OrganizationSalesSettingsSerializer(settings_obj).data)

    def put(self, request, org_slug: str):
        org = getattr(request, "org", None)
        if not org or org.slug != org_slug:
            return Response({"detail": "Organización no válida"}, status=status.HTTP_400_BAD_REQUEST)

        settings_obj = get_sales_settings(org)
        serializer = OrganizationSalesSettingsSerializer(settings_obj, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)
