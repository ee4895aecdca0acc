import dataclasses
from decimal import Decimal

import pytest

from sales.pricing import compute_invoice_totals, compute_line_pricing, money
from sales.rounding import (
    BracketCeilingRounding,
    IntervalRounding,
    ceil_to_bracket,
    round2,
    round_to_interval,
)

D = Decimal
interval = IntervalRounding(enabled=True, interval=D("1"))


def test_round2_is_half_up():
    assert round2("2.675") == D("2.68")
    assert round2("2.665") == D("2.67")
    assert money(None) == D("0.00")


@pytest.mark.parametrize("amount,enabled,step,expected", [
    ("91.50", True, "1", "92.00"),
    ("91.49", True, "1", "91.00"),
    ("91.50", False, "1", "91.50"),
    ("91.50", True, "0", "91.50"),
    ("93.00", True, "5", "95.00"),
    ("92.40", True, "0.5", "92.50"),
])
def test_round_to_interval(amount, enabled, step, expected):
    assert round_to_interval(D(amount), enabled, D(step)) == D(expected)


@pytest.mark.parametrize("price,discount,expected", [
    ("91.50", "10", "95.00"),
    ("90.00", "10", "90.00"),
    ("101.00", "10", "110.00"),
    ("100.00", "5", "100.00"),
    ("91.50", "0", "91.50"),
])
def test_ceil_to_bracket(price, discount, expected):
    assert ceil_to_bracket(D(price), D(discount)) == D(expected)


def test_strategies_disagree_on_same_input():
    assert interval(D("91.50"), D("10")) == D("92.00")
    assert BracketCeilingRounding()(D("91.50"), D("10")) == D("95.00")


def test_line_pricing_is_pure_and_frozen():
    kwargs = dict(mrp="100.00", quantity=5, discount_pct="10", rounding=interval)
    first = compute_line_pricing(**kwargs)
    second = compute_line_pricing(**kwargs)
    assert first == second
    with pytest.raises(dataclasses.FrozenInstanceError):
        first.unit_price = D("1")


def test_discounted_line_without_tax():
    result = compute_line_pricing(mrp="100.00", quantity=5, discount_pct="10", rounding=interval)
    assert result.unit_price == D("90.00")
    assert result.line_total == D("450.00")
    assert result.taxable_base == D("450.00")
    assert result.tax_amount == D("0.00")
    assert result.final_line_total == D("450.00")


def test_override_replaces_price_and_ignores_discount():
    result = compute_line_pricing(mrp="100.00", quantity=2, discount_pct="10", override_price="75",
                                  rounding=interval)
    assert result.unit_price == D("75.00")
    assert result.line_total == D("150.00")


@pytest.mark.parametrize("bad", ["-5", "abc", "NaN", ""])
def test_invalid_override_is_ignored(bad):
    result = compute_line_pricing(mrp="100.00", quantity=1, discount_pct="10", override_price=bad,
                                  rounding=interval)
    assert result.unit_price == D("90.00")


def test_zero_override_is_valid():
    result = compute_line_pricing(mrp="100.00", quantity=3, override_price="0", rounding=interval)
    assert result.final_line_total == D("0.00")


@pytest.mark.parametrize("mrp,qty,discount,rate", [
    ("99.99", 3, "0", "18"),
    ("12.35", 7, "12.5", "5"),
    ("1499.00", 1, "33", "28"),
    ("0.99", 13, "0", "12"),
])
def test_exclusive_tax_adds_up(mrp, qty, discount, rate):
    r = compute_line_pricing(mrp=mrp, quantity=qty, discount_pct=discount, tax_rate=rate,
                             tax_mode="exclusive", rounding=IntervalRounding(enabled=False))
    assert r.taxable_base + r.tax_amount == r.final_line_total
    assert r.taxable_base == r.line_total


@pytest.mark.parametrize("mrp,qty,discount,rate", [
    ("118.00", 1, "0", "18"),
    ("99.99", 3, "0", "18"),
    ("12.35", 7, "12.5", "5"),
    ("1499.00", 1, "33", "28"),
])
def test_inclusive_tax_round_trip(mrp, qty, discount, rate):
    r = compute_line_pricing(mrp=mrp, quantity=qty, discount_pct=discount, tax_rate=rate,
                             tax_mode="inclusive", rounding=IntervalRounding(enabled=False))
    assert r.final_line_total == r.line_total
    assert r.taxable_base == r.final_line_total - r.tax_amount
    rebuilt = round2(r.taxable_base * (1 + D(rate) / 100))
    assert abs(rebuilt - r.final_line_total) <= D("0.01")


def test_zero_rate_means_no_tax():
    r = compute_line_pricing(mrp="50", quantity=2, tax_rate="0", tax_mode="exclusive", rounding=interval)
    assert r.tax_amount == D("0.00")
    assert r.final_line_total == D("100.00")


def _priced(mrp, qty, **kw):
    kw.setdefault("rounding", interval)
    r = compute_line_pricing(mrp=mrp, quantity=qty, **kw)
    return {"mrp": D(mrp), "quantity": qty, "tax_mode": kw.get("tax_mode", "none"), **r.as_dict()}


def test_invoice_totals_with_manual_discount():
    totals = compute_invoice_totals([_priced("500", 1), _priced("500", 1)], manual_discount="100")
    assert totals["subtotal"] == D("1000.00")
    assert totals["lines_total"] == D("1000.00")
    assert totals["total_discount"] == D("100.00")
    assert totals["total_amount"] == D("900.00")


def test_invoice_totals_line_discount():
    totals = compute_invoice_totals([_priced("100", 5, discount_pct="10")])
    assert totals["subtotal"] == D("500.00")
    assert totals["total_discount"] == D("50.00")
    assert totals["total_amount"] == D("450.00")


def test_invoice_totals_exclusive_tax_is_not_a_discount():
    totals = compute_invoice_totals([_priced("100", 1, tax_rate="10", tax_mode="exclusive")])
    assert totals["taxable_amount"] == D("100.00")
    assert totals["tax_amount"] == D("10.00")
    assert totals["total_discount"] == D("0.00")
    assert totals["total_amount"] == D("110.00")


def test_invoice_totals_inclusive_tax():
    totals = compute_invoice_totals([_priced("118", 1, tax_rate="18", tax_mode="inclusive")])
    assert totals["taxable_amount"] == D("100.00")
    assert totals["tax_amount"] == D("18.00")
    assert totals["total_discount"] == D("0.00")
    assert totals["total_amount"] == D("118.00")
