from decimal import Decimal

import pytest

from backend.app.core.errors_core import ConversionError, UnknownCurrencyError
from backend.app.models import DepositStatus
from backend.app.services.currency_registry import (
    CurrencyDescriptor,
    descriptor_for_symbol,
    find_currency,
    list_currencies,
    map_provider_state,
    resolve_currency,
    to_decimal,
)


def test_registry_contains_supported_coins():
    symbols = {d.external_code: (d.internal_symbol, d.unit_divisor) for d in list_currencies()}
    assert symbols == {
        "tbtc4": ("TBTC4", 10**8),
        "tsol": ("TSOL", 10**9),
        "tada": ("TADA", 10**6),
        "tdoge": ("TDOGE", 10**8),
    }


def test_resolve_unknown_currency_raises():
    with pytest.raises(UnknownCurrencyError) as info:
        resolve_currency("tltc")
    assert info.value.external_code == "tltc"
    assert find_currency("tltc") is None


def test_lookup_is_case_sensitive():
    assert find_currency("TBTC4") is None
    assert descriptor_for_symbol("TBTC4") is resolve_currency("tbtc4")
    assert descriptor_for_symbol("tbtc4") is None


def test_descriptor_rejects_non_positive_divisor():
    with pytest.raises(ValueError):
        CurrencyDescriptor("x", "X", 0)


@pytest.mark.parametrize(
    "coin,raw,expected",
    [
        ("tbtc4", "150000000", Decimal("1.5")),
        ("tbtc4", "1", Decimal("0.00000001")),
        ("tsol", "2500000000", Decimal("2.5")),
        ("tada", 100, Decimal("0.0001")),
        ("tdoge", " 42 ", Decimal("0.00000042")),
        ("tbtc4", "123456789012345678901234", Decimal("1234567890123456.78901234")),
    ],
)
def test_to_decimal_exact(coin, raw, expected):
    assert to_decimal(raw, resolve_currency(coin)) == expected


@pytest.mark.parametrize("raw", ["0", "-5", "abc", "1.5", "", "1e8", True, 0, -3, 1.5, None])
def test_to_decimal_rejects(raw):
    with pytest.raises(ConversionError):
        to_decimal(raw, resolve_currency("tbtc4"))


@pytest.mark.parametrize(
    "state,expected",
    [
        ("pending", DepositStatus.PENDING),
        ("confirmed", DepositStatus.COMPLETED),
        ("failed", DepositStatus.FAILED),
        ("unconfirmed", DepositStatus.PENDING),
        ("replaced", DepositStatus.PENDING),
    ],
)
def test_map_provider_state(state, expected):
    assert map_provider_state(state) is expected


@pytest.mark.parametrize(
    "coin,raw,expected",
    [
        ("tbtc4", "9" * 26, Decimal("999999999999999999.99999999")),
        ("tsol", "9" * 27, Decimal("999999999999999999.999999999")),
        ("tbtc4", "0" * 40 + "1", Decimal("0.00000001")),
    ],
)
def test_to_decimal_accepts_largest_storable_amount(coin, raw, expected):
    assert to_decimal(raw, resolve_currency(coin)) == expected


@pytest.mark.parametrize("raw", ["1" + "0" * 26, "9" * 60, "9" * 5000, 10**26])
def test_to_decimal_rejects_amount_beyond_column(raw):
    with pytest.raises(ConversionError) as info:
        to_decimal(raw, resolve_currency("tbtc4"))
    assert info.value.message == "Amount exceeds the storable range."
