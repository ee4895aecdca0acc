import uuid
from decimal import Decimal
from django.db import models
from django.core.validators import RegexValidator, MinValueValidator

slug_validator = RegexValidator(
    regex=r"^[a-z0-9]+(?:-[a-z0-9]+)*$",
    message="Solo minúsculas, números y guiones medios; no empezar/terminar por '-'"
)

class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    class Meta:
        abstract = True

class Organization(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    slug = models.SlugField(unique=True, validators=[slug_validator], max_length=40)

    def __str__(self):
        return f"{self.name} ({self.slug})"

TAX_TYPE_CHOICES = [
    ("inclusive", "Inclusive"),
    ("exclusive", "Exclusive"),
    ("none", "None"),
]

class OrganizationSalesSettings(models.Model):
    """
    Configuración de ventas/compras de la organización.
    Se crea con valores por defecto la primera vez que se pide (get_sales_settings).
    """
    organization = models.OneToOneField(
        "core.Organization",
        on_delete=models.CASCADE,
        related_name="sales_settings",
    )
    tax_type = models.CharField(max_length=16, choices=TAX_TYPE_CHOICES, default="inclusive")
    enable_rounding = models.BooleanField(default=True)
    rounding_interval = models.DecimalField(
        max_digits=8, decimal_places=2, default=Decimal("1.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    allow_negative_stock = models.BooleanField(default=False)
    allow_due_billing = models.BooleanField(default=True)

    # prefijos de numeración (ej: INV-1001)
    invoice_prefix = models.CharField(max_length=12, default="INV")
    purchase_prefix = models.CharField(max_length=12, default="PUR")
    company_prefix = models.CharField(max_length=12, default="CMP")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def prefix_for(self, series: str) -> str:
        return {
            "invoice": self.invoice_prefix,
            "purchase": self.purchase_prefix,
            "company": self.company_prefix,
        }[series]

    def __str__(self):
        return f"SalesSettings({self.organization.slug})"


def get_sales_settings(org: Organization) -> OrganizationSalesSettings:
    settings_obj, _ = OrganizationSalesSettings.objects.get_or_create(organization=org)
    return settings_obj
