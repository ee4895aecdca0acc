from decimal import Decimal
from unittest import mock

import pytest
from django.db import DatabaseError, OperationalError
from rest_framework.exceptions import NotFound, ValidationError

from contacts.models import CustomerLedger
from core.exceptions import CommitFailed
from inventory.models import StockMove
from inventory.services import apply_stock_deltas as real_apply_stock_deltas
from sales.models import Invoice, InvoiceLine, SequenceCounter
from sales.services_invoice import (
    check_payment_invariant,
    commit_invoice,
    compute_draft,
    ensure_payment_invariant,
    replace_lines,
)
from tests.conftest import line, stock_of

pytestmark = pytest.mark.django_db

D = Decimal


def test_sale_commit_writes_invoice_lines_stock_and_voucher(org, shirt, user):
    invoice_id, number = commit_invoice(
        org, lines=[line(shirt, 2)], payment_methods={"cash": "200"},
        party_name="Ana", party_identifier="600 111 222", user=user,
    )
    invoice = Invoice.objects.get(id=invoice_id)

    assert number == "INV-1001"
    assert invoice.number == number
    assert invoice.status == Invoice.STATUS_COMPLETED
    assert invoice.party_identifier == "600111222"
    assert invoice.total_amount == D("200.00")
    assert invoice.voucher_number == 1001
    assert invoice.lines.count() == 1
    assert stock_of(shirt) == 8
    move = StockMove.objects.get(product=shirt)
    assert (move.qty, move.reason, move.ref_id) == (-2, "sale", number)
    assert check_payment_invariant(invoice)


def test_lines_snapshot_tax_configuration(org, sales_settings, make_product):
    sales_settings.tax_type = "exclusive"
    sales_settings.save()
    product = make_product("TAXED", "100.00", stock=3, tax_rate=D("10"))

    invoice_id, _ = commit_invoice(org, lines=[line(product, 1)], payment_methods={"card": "110"})
    product.tax_rate = D("21")
    product.save()

    stored = InvoiceLine.objects.get(invoice_id=invoice_id)
    assert stored.tax_rate == D("10.00")
    assert stored.tax_mode == "exclusive"
    assert stored.final_line_total == D("110.00")


def test_insufficient_stock_is_rejected_before_numbering(org, shirt):
    with pytest.raises(ValidationError):
        commit_invoice(org, lines=[line(shirt, 11)], payment_methods={"cash": "1100"})

    assert stock_of(shirt) == 10
    assert not Invoice.objects.exists()
    assert not SequenceCounter.objects.filter(org=org, series="invoice").exists()


def test_negative_stock_allowed_by_configuration(org, sales_settings, shirt):
    sales_settings.allow_negative_stock = True
    sales_settings.save()

    commit_invoice(org, lines=[line(shirt, 12)], payment_methods={"cash": "1200"})
    assert stock_of(shirt) == -2


def test_unknown_product_is_not_found(org, shirt):
    with pytest.raises(NotFound):
        commit_invoice(org, lines=[{"product_id": 999999, "quantity": 1}])


def test_empty_invoice_is_rejected(org, shirt):
    with pytest.raises(ValidationError):
        commit_invoice(org, lines=[line(shirt, 0)])


def test_partial_payment_leaves_due_and_open_status(org, shirt):
    invoice_id, _ = commit_invoice(org, lines=[line(shirt, 2)], payment_methods={"cash": "150"})
    invoice = Invoice.objects.get(id=invoice_id)

    assert invoice.status == Invoice.STATUS_OPEN
    assert invoice.payment_methods == {"cash": "150.00", "due": "50.00"}
    assert check_payment_invariant(invoice)


@pytest.mark.parametrize("methods", [
    {"cash": "250"},
    {"bitcoin": "200"},
    {"cash": "-10", "card": "210"},
    {"cash": "100", "due": "50"},
    {"debit_note": "200"},
])
def test_invalid_payment_allocations(org, shirt, methods):
    with pytest.raises(ValidationError):
        commit_invoice(org, lines=[line(shirt, 2)], payment_methods=methods)
    assert not Invoice.objects.exists()


def test_due_billing_can_be_disabled(org, sales_settings, shirt):
    sales_settings.allow_due_billing = False
    sales_settings.save()
    with pytest.raises(ValidationError):
        commit_invoice(org, lines=[line(shirt, 1)], payment_methods={"cash": "50"})


def test_credit_note_payment_spends_customer_balance(org, shirt):
    CustomerLedger.objects.create(org=org, identifier="600111222", credit_balance=D("120.00"))

    commit_invoice(
        org, lines=[line(shirt, 2)], payment_methods={"credit_note": "120", "cash": "80"},
        party_identifier="600111222",
    )
    assert CustomerLedger.objects.get(org=org, identifier="600111222").credit_balance == D("0.00")


def test_credit_note_payment_needs_enough_balance(org, shirt):
    CustomerLedger.objects.create(org=org, identifier="600111222", credit_balance=D("20.00"))
    with pytest.raises(ValidationError):
        commit_invoice(
            org, lines=[line(shirt, 1)], payment_methods={"credit_note": "100"},
            party_identifier="600111222",
        )
    with pytest.raises(ValidationError):
        commit_invoice(org, lines=[line(shirt, 1)], payment_methods={"credit_note": "10", "cash": "90"})


def test_stock_failure_leaves_no_invoice(org, shirt):
    with mock.patch("sales.services_invoice.apply_stock_deltas", side_effect=DatabaseError("fallo")):
        with pytest.raises(CommitFailed):
            commit_invoice(org, lines=[line(shirt, 2)], payment_methods={"cash": "200"})

    assert not Invoice.objects.exists()
    assert not InvoiceLine.objects.exists()
    assert stock_of(shirt) == 10
    assert not SequenceCounter.objects.filter(org=org, series="sales_voucher").exists()


def test_ledger_failure_rolls_back_stock_and_invoice(org, shirt):
    CustomerLedger.objects.create(org=org, identifier="600111222", credit_balance=D("200.00"))
    with mock.patch("sales.services_invoice.apply_balance_delta", side_effect=RuntimeError("caído")):
        with pytest.raises(RuntimeError):
            commit_invoice(
                org, lines=[line(shirt, 2)], payment_methods={"credit_note": "200"},
                party_identifier="600111222",
            )

    assert not Invoice.objects.exists()
    assert stock_of(shirt) == 10
    assert not StockMove.objects.exists()
    assert CustomerLedger.objects.get(identifier="600111222").credit_balance == D("200.00")


def test_conflicts_are_retried(org, shirt):
    calls = []

    def flaky(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("database is locked")
        return real_apply_stock_deltas(*args, **kwargs)

    with mock.patch("sales.services_invoice.apply_stock_deltas", side_effect=flaky):
        invoice_id, number = commit_invoice(org, lines=[line(shirt, 2)], payment_methods={"cash": "200"})

    assert len(calls) == 2
    assert Invoice.objects.filter(org=org).count() == 1
    assert stock_of(shirt) == 8
    assert number == "INV-1001"


def test_exhausted_retries_raise_commit_failed(org, shirt, settings):
    settings.LEDGER_TRANSACTION_MAX_ATTEMPTS = 3
    with mock.patch(
        "sales.services_invoice.apply_stock_deltas", side_effect=OperationalError("deadlock detected")
    ) as patched:
        with pytest.raises(CommitFailed):
            commit_invoice(org, lines=[line(shirt, 2)], payment_methods={"cash": "200"})

    assert patched.call_count == 3
    assert not Invoice.objects.exists()
    assert stock_of(shirt) == 10


def test_purchase_adds_stock_and_uses_purchase_series(org, jeans):
    invoice_id, number = commit_invoice(
        org, kind=Invoice.KIND_PURCHASE, lines=[line(jeans, 5)], payment_methods={"bank_transfer": "1500"},
    )
    invoice = Invoice.objects.get(id=invoice_id)

    assert number == "PUR-1001"
    assert invoice.total_amount == D("1500.00")
    assert stock_of(jeans) == 10
    assert SequenceCounter.objects.get(org=org, series="purchase_voucher").current_number == 1001


def test_edit_applies_net_delta_per_product(org, shirt, jeans):
    invoice_id, _ = commit_invoice(org, lines=[line(shirt, 2)], payment_methods={"cash": "200"})

    invoice = replace_lines(org, invoice_id, lines=[line(shirt, 5)])
    assert stock_of(shirt) == 5
    assert StockMove.objects.filter(product=shirt, reason="edit").get().qty == -3
    assert invoice.total_amount == D("500.00")
    assert invoice.payment_methods == {"cash": "200.00", "due": "300.00"}
    assert invoice.status == Invoice.STATUS_OPEN

    invoice = replace_lines(org, invoice_id, lines=[line(jeans, 1)], payment_methods={"card": "500"})
    assert stock_of(shirt) == 10
    assert stock_of(jeans) == 4
    assert invoice.status == Invoice.STATUS_COMPLETED
    assert list(invoice.lines.values_list("product_id", "quantity")) == [(jeans.id, 1)]
    assert invoice.number == "INV-1001"


def test_edit_over_stock_leaves_invoice_untouched(org, shirt):
    invoice_id, _ = commit_invoice(org, lines=[line(shirt, 2)], payment_methods={"cash": "200"})

    with pytest.raises(ValidationError):
        replace_lines(org, invoice_id, lines=[line(shirt, 20)])

    invoice = Invoice.objects.get(id=invoice_id)
    assert invoice.total_amount == D("200.00")
    assert invoice.lines.get().quantity == 2
    assert stock_of(shirt) == 8


def test_edit_of_purchase_diffs_the_other_way(org, jeans):
    invoice_id, _ = commit_invoice(org, kind=Invoice.KIND_PURCHASE, lines=[line(jeans, 5)])
    replace_lines(org, invoice_id, kind=Invoice.KIND_PURCHASE, lines=[line(jeans, 2)])
    assert stock_of(jeans) == 7


@pytest.mark.parametrize("override", ["-5", "abc", "NaN"])
def test_invalid_override_keeps_the_line_discount(org, shirt, override):
    draft = compute_draft(org, kind=Invoice.KIND_SALE,
                          lines=[line(shirt, 1, discount_pct="10", override_price=override)])

    priced = draft["lines"][0]
    assert priced["override_price"] is None
    assert priced["discount_pct"] == D("10")
    assert priced["effective_unit_price"] == D("90.00")


def test_valid_override_replaces_the_discount(org, shirt):
    draft = compute_draft(org, kind=Invoice.KIND_SALE,
                          lines=[line(shirt, 1, discount_pct="10", override_price="75")])

    priced = draft["lines"][0]
    assert priced["override_price"] == D("75.00")
    assert priced["discount_pct"] == D("0")
    assert priced["effective_unit_price"] == D("75.00")


def test_unbalanced_payments_are_refused(org):
    invoice = Invoice(org=org, number="INV-9999", total_amount=D("100.00"),
                      payment_methods={"cash": "60.00", "due": "0.00"})
    assert not check_payment_invariant(invoice)
    with pytest.raises(ValidationError):
        ensure_payment_invariant(invoice)

    invoice.payment_methods = {"cash": "60.00", "due": "40.00"}
    ensure_payment_invariant(invoice)
