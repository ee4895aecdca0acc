from decimal import Decimal

import pytest
from django.db import transaction
from rest_framework.exceptions import ValidationError

from contacts.models import CustomerLedger
from contacts.services import apply_balance_delta, available_balances
from contacts.validators import normalize_identifier
from core.exceptions import PartialStateError
from core.models import Organization
from inventory.models import Product, StockRecord
from inventory.services import (
    PURCHASE,
    SALE,
    apply_stock_deltas,
    compute_stock_deltas,
)
from sales.services_numbering import advance_voucher

D = Decimal


def test_normalize_identifier():
    assert normalize_identifier(" 600 111 222 ") == "600111222"
    assert normalize_identifier("12") == ""
    assert normalize_identifier(None) == ""


def test_sale_and_purchase_deltas():
    old = [{"product_id": 1, "quantity": 2}, {"product_id": 2, "quantity": 1}]
    new = [{"product_id": 1, "quantity": 5}, {"product_id": 3, "quantity": 4}, {"product_id": 3, "quantity": 1}]

    assert compute_stock_deltas(old, new, direction=SALE) == {1: -3, 2: 1, 3: -5}
    assert compute_stock_deltas(old, new, direction=PURCHASE) == {1: 3, 2: -1, 3: 5}
    assert compute_stock_deltas(old, old, direction=SALE) == {}


@pytest.mark.django_db(transaction=True)
def test_adapters_refuse_to_run_outside_a_commit():
    org = Organization.objects.create(name="Guardas", slug="guardas")
    product = Product.objects.create(org=org, sku="X", name="X", mrp=D("10"))

    with pytest.raises(PartialStateError):
        apply_stock_deltas(org, {product.id: -1})
    with pytest.raises(PartialStateError):
        apply_balance_delta(org, "600111222", credit=10)
    with pytest.raises(PartialStateError):
        advance_voucher(org, "sales_voucher")

    assert not StockRecord.objects.exists()
    assert not CustomerLedger.objects.exists()


@pytest.mark.django_db
def test_balance_deltas_accumulate(org):
    with transaction.atomic():
        apply_balance_delta(org, "600111222", name="Ana", credit=D("50"))
        apply_balance_delta(org, "600111222", credit=D("25.50"), debit=D("10"))

    assert available_balances(org, "600111222") == (D("75.50"), D("10.00"))
    assert available_balances(org, "699999999") == (D("0.00"), D("0.00"))


@pytest.mark.django_db
def test_balance_cannot_go_negative(org):
    with pytest.raises(ValidationError):
        with transaction.atomic():
            apply_balance_delta(org, "600111222", credit=D("10"))
            apply_balance_delta(org, "600111222", credit=D("-20"))

    assert not CustomerLedger.objects.filter(org=org).exists()


@pytest.mark.django_db
def test_balance_requires_identifier(org):
    with pytest.raises(ValidationError):
        with transaction.atomic():
            apply_balance_delta(org, "  1 ", credit=D("10"))


@pytest.mark.django_db
def test_stock_deltas_lock_and_log_moves(org, shirt, jeans, user):
    with transaction.atomic():
        result = apply_stock_deltas(org, {shirt.id: -3, jeans.id: 2}, reason="sale", ref_type="invoice",
                                    ref_id="INV-1001", user=user)

    assert result == {shirt.id: 7, jeans.id: 7}
    assert set(shirt.stock_moves.values_list("qty", "ref_id")) == {(-3, "INV-1001")}


@pytest.mark.django_db
def test_stock_cannot_go_negative_unless_allowed(org, shirt):
    with pytest.raises(ValidationError):
        with transaction.atomic():
            apply_stock_deltas(org, {shirt.id: -11})
    assert StockRecord.objects.get(product=shirt).stock == 10

    with transaction.atomic():
        apply_stock_deltas(org, {shirt.id: -11}, allow_negative=True)
    assert StockRecord.objects.get(product=shirt).stock == -1
