# -*- coding: utf-8 -*-
# backend/app/services/currency_registry.py
# =============================================================================
# Deposit Ledger: реестр поддерживаемых валют провайдера
# -----------------------------------------------------------------------------
# Назначение:
#   • Статическая таблица: код монеты BitGo → внутренний символ + делитель
#     минимальной единицы (сатоши, лампорты, ловеласы, ...).
#   • Перевод сырой суммы из вебхука (строка целых минимальных единиц)
#     в Decimal.
#   • Перевод состояния перевода у провайдера в статус депозита.
#
# Канон/инварианты:
#   • Сравнение кодов: точное и чувствительное к регистру ("TBTC4" ≠ "tbtc4").
#   • Сумма = Decimal(raw) / Decimal(divisor), без float и без округления.
#   • Сумма должна быть строго > 0 и меньше 10^18 (целая часть колонки
#     Numeric(36,18)); мусор/дробь/минус/переполнение → ConversionError.
#   • Неизвестное состояние провайдера → pending (безопасно: без зачисления).
#
# Запреты:
#   • Никакого I/O: чистые функции.
#   • Таблица не меняется во время работы.
# =============================================================================

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union

from backend.app.core.errors_core import ConversionError, UnknownCurrencyError
from backend.app.core.utils_core import AMOUNT_PRECISION, AMOUNT_SCALE
from backend.app.models.ledger_models import DepositStatus

_DIGITS = re.compile(r"[0-9]+")

# Верхняя граница суммы (не включительно) в единицах валюты
MAX_AMOUNT = 10 ** (AMOUNT_PRECISION - AMOUNT_SCALE)


@dataclass(frozen=True)
class CurrencyDescriptor:
    """Описание валюты: код провайдера, внутренний символ, делитель (>0)."""

    external_code: str
    internal_symbol: str
    unit_divisor: int

    def __post_init__(self) -> None:
        if self.unit_divisor <= 0:
            raise ValueError(f"unit_divisor must be positive: {self.unit_divisor}")


_REGISTRY: Mapping[str, CurrencyDescriptor] = MappingProxyType(
    {
        d.external_code: d
        for d in (
            CurrencyDescriptor("tbtc4", "TBTC4", 10**8),
            CurrencyDescriptor("tsol", "TSOL", 10**9),
            CurrencyDescriptor("tada", "TADA", 10**6),
            CurrencyDescriptor("tdoge", "TDOGE", 10**8),
        )
    }
)

_STATE_MAP: Dict[str, DepositStatus] = {
    "pending": DepositStatus.PENDING,
    "confirmed": DepositStatus.COMPLETED,
    "failed": DepositStatus.FAILED,
    "unconfirmed": DepositStatus.PENDING,
}


def find_currency(external_code: str) -> Optional[CurrencyDescriptor]:
    """Дескриптор по коду провайдера или None."""
    return _REGISTRY.get(external_code)


def resolve_currency(external_code: str) -> CurrencyDescriptor:
    """Дескриптор по коду провайдера; неизвестный код → UnknownCurrencyError."""
    descriptor = _REGISTRY.get(external_code)
    if descriptor is None:
        raise UnknownCurrencyError(external_code)
    return descriptor


def descriptor_for_symbol(symbol: str) -> Optional[CurrencyDescriptor]:
    """Дескриптор по внутреннему символу (TBTC4, TSOL, ...)."""
    for descriptor in _REGISTRY.values():
        if descriptor.internal_symbol == symbol:
            return descriptor
    return None


def list_currencies() -> List[CurrencyDescriptor]:
    return list(_REGISTRY.values())


def to_decimal(raw: Union[str, int], descriptor: CurrencyDescriptor) -> Decimal:
    """
    Сырая сумма в минимальных единицах → Decimal в единицах валюты.

    Пример: to_decimal("150000000", tbtc4) == Decimal("1.5").

    Принимаются только неотрицательные целые (строка ASCII-цифр или int);
    результат обязан быть > 0 и < MAX_AMOUNT, иначе он не влезет в колонку
    без округления.
    """
    if isinstance(raw, bool):
        raise ConversionError(details={"raw": str(raw)})
    if isinstance(raw, int):
        units = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not _DIGITS.fullmatch(text):
            raise ConversionError(
                "Amount must be an integer number of smallest units.",
                details={"raw": raw},
            )
        # длиннее границы не бывает; заодно не упираемся в лимит int()
        significant = text.lstrip("0")
        if len(significant) > len(str(MAX_AMOUNT * descriptor.unit_divisor)):
            raise ConversionError("Amount exceeds the storable range.", details={"raw": raw})
        units = int(significant or "0")
    else:
        raise ConversionError(details={"raw": repr(raw)})

    if units <= 0:
        raise ConversionError("Amount must be positive.", details={"raw": str(raw)})
    if units >= MAX_AMOUNT * descriptor.unit_divisor:
        raise ConversionError("Amount exceeds the storable range.", details={"raw": str(raw)})

    # Частное степени десяти точно представимо в Decimal при достаточной precision
    return Decimal(units) / Decimal(descriptor.unit_divisor)


def map_provider_state(state: str) -> DepositStatus:
    """Состояние перевода у провайдера → статус депозита (неизвестное → pending)."""
    return _STATE_MAP.get(state, DepositStatus.PENDING)


__all__ = [
    "CurrencyDescriptor",
    "MAX_AMOUNT",
    "find_currency",
    "resolve_currency",
    "descriptor_for_symbol",
    "list_currencies",
    "to_decimal",
    "map_provider_state",
]
