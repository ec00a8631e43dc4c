"""
Tests for money helpers and cart totals
"""
from decimal import Decimal

from storefront.cart.models import CartLine
from storefront.money import (
    calculate_totals,
    format_money,
    from_minor_units,
    shipping_fee,
    tax_from_inclusive,
    to_minor_units,
)


def _line(product_id: str, price: int, quantity: int) -> CartLine:
    return CartLine(product_id=product_id, quantity=quantity, unit_price=price)


class TestConversion:
    def test_to_minor_units_rounds_half_up(self):
        assert to_minor_units("100.505") == 10051
        assert to_minor_units(49.99) == 4999
        assert to_minor_units(Decimal("0.01")) == 1

    def test_to_minor_units_bad_input(self):
        assert to_minor_units(None) == 0
        assert to_minor_units("abc") == 0

    def test_from_minor_units(self):
        assert from_minor_units(123450) == Decimal("1234.50")

    def test_format_money(self):
        assert format_money(123450) == "R1,234.50"
        assert format_money(5, "usd") == "$0.05"


class TestTax:
    def test_tax_is_extracted_from_inclusive_total(self):
        # 1150.00 incl. 15% -> 150.00 tax
        assert tax_from_inclusive(115000, Decimal("0.15")) == 15000

    def test_tax_rounds_to_minor_unit(self):
        # 500.00 / 1.15 = 434.7826... -> tax 65.2174 -> 6522 cents
        assert tax_from_inclusive(50000, "0.15") == 6522

    def test_zero_total(self):
        assert tax_from_inclusive(0, "0.15") == 0


class TestShipping:
    def test_free_above_threshold(self):
        assert shipping_fee(100001, 100000, 10000) == 0

    def test_charged_at_threshold(self):
        assert shipping_fee(100000, 100000, 10000) == 10000

    def test_empty_cart_ships_free(self):
        assert shipping_fee(0, 100000, 10000) == 0


class TestCalculateTotals:
    def test_below_threshold(self):
        totals = calculate_totals([_line("a", 25000, 2)], Decimal("0.15"), 100000, 10000)

        assert totals.subtotal == 50000
        assert totals.tax == 6522
        assert totals.subtotal_excl_tax == 43478
        assert totals.shipping == 10000
        assert totals.total == 60000
        assert totals.amount_to_free_shipping == 50000
        assert totals.item_count == 2

    def test_above_threshold(self):
        lines = [_line("a", 100000, 1), _line("b", 15000, 1)]
        totals = calculate_totals(lines, Decimal("0.15"), 100000, 10000)

        assert totals.subtotal == 115000
        assert totals.tax == 15000
        assert totals.shipping == 0
        assert totals.total == 115000
        assert totals.amount_to_free_shipping == 0

    def test_to_dict(self):
        data = calculate_totals([], Decimal("0.15"), 100000, 10000).to_dict()
        assert data["total"] == 0
        assert data["item_count"] == 0
