from django.contrib import admin
from core.models import Organization, OrganizationSalesSettings

@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "created_at")
    search_fields = ("name", "slug")

@admin.register(OrganizationSalesSettings)
class OrganizationSalesSettingsAdmin(admin.ModelAdmin):
    list_display = ("organization", "tax_type", "enable_rounding", "rounding_interval", "allow_negative_stock")
    search_fields = ("organization__name", "organization__slug")
