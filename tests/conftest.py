from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from core.models import Organization, get_sales_settings
from inventory.models import Product, StockRecord


@pytest.fixture
def org(db):
    return Organization.objects.create(name="Tienda Centro", slug="tienda-centro")


@pytest.fixture
def sales_settings(org):
    return get_sales_settings(org)


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(username="cajero", password="cajero-pass")


@pytest.fixture
def make_product(org):
    def _make(sku, mrp, stock=0, **extra):
        extra.setdefault("name", sku.title())
        product = Product.objects.create(org=org, sku=sku, mrp=Decimal(str(mrp)), **extra)
        StockRecord.objects.create(org=org, product=product, stock=stock)
        return product
    return _make


@pytest.fixture
def shirt(make_product):
    return make_product("SHIRT", "100.00", stock=10)


@pytest.fixture
def jeans(make_product):
    return make_product("JEANS", "500.00", stock=5, purchase_price=Decimal("300.00"))


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def stock_of(product):
    return StockRecord.objects.get(product=product).stock


def line(product, quantity, **extra):
    return {"product_id": product.id, "quantity": quantity, **extra}
