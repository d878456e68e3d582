"""Tests for base-unit <-> canonical decimal conversion."""

from decimal import Decimal

import pytest

from contribledger.domain.amounts import decimal_to_native, from_canonical, to_canonical
from contribledger.exceptions import InvalidAmount


class TestToCanonical:
    def test_quarter_ether(self):
        assert to_canonical(250000000000000000, 18) == "0.25"

    def test_hex_quantity(self):
        assert to_canonical("0x3782dace9d90000", 18) == "0.25"

    def test_whole_units_drop_fraction(self):
        assert to_canonical(300000000, 8) == "3"

    def test_zero(self):
        assert to_canonical(0, 18) == "0"
        assert to_canonical("0", 6) == "0"

    def test_smallest_unit(self):
        assert to_canonical(1, 18) == "0.000000000000000001"
        assert to_canonical(1, 7) == "0.0000001"

    def test_zero_decimals(self):
        assert to_canonical(42, 0) == "42"

    def test_huge_value_has_no_float_drift(self):
        native = 123456789012345678901234567890
        assert to_canonical(native, 18) == "123456789012.34567890123456789"

    def test_digit_string(self):
        assert to_canonical("1500000", 6) == "1.5"

    @pytest.mark.parametrize("bad", [-1, "-5", "1.5", "abc", "", "0x", "0xzz", True, 1.5, None])
    def test_rejects_invalid(self, bad):
        with pytest.raises(InvalidAmount):
            to_canonical(bad, 18)

    def test_rejects_negative_decimals(self):
        with pytest.raises(InvalidAmount):
            to_canonical(1, -1)


class TestFromCanonical:
    def test_inverse(self):
        assert from_canonical("0.25", 18) == "250000000000000000"
        assert from_canonical("3", 8) == "300000000"
        assert from_canonical("0", 10) == "0"

    def test_trailing_zeros_accepted(self):
        assert from_canonical("1.500", 6) == "1500000"

    def test_too_many_fraction_digits(self):
        with pytest.raises(InvalidAmount):
            from_canonical("0.12345678", 6)

    @pytest.mark.parametrize("bad", ["", "-1", "1e5", "1.2.3", " .5"])
    def test_rejects_invalid(self, bad):
        with pytest.raises(InvalidAmount):
            from_canonical(bad, 8)

    def test_round_trip_samples(self):
        for native, decimals in [(1, 18), (10**18, 18), (123456789, 8), (7, 0), (99999999999, 10), (5, 7)]:
            assert from_canonical(to_canonical(native, decimals), decimals) == str(native)


class TestDecimalToNative:
    def test_btc_vout_value(self):
        assert decimal_to_native(Decimal("0.00012345"), 8) == 12345

    def test_string_value(self):
        assert decimal_to_native("1.5", 8) == 150000000

    def test_exponent_form_decimal(self):
        assert decimal_to_native(Decimal("1E-8"), 8) == 1

    def test_negative_rejected(self):
        with pytest.raises(InvalidAmount):
            decimal_to_native(Decimal("-0.1"), 8)

    def test_sub_satoshi_rejected(self):
        with pytest.raises(InvalidAmount):
            decimal_to_native(Decimal("0.000000001"), 8)
