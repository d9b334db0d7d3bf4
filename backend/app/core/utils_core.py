# -*- coding: utf-8 -*-
# backend/app/core/utils_core.py
# =============================================================================
# Назначение:
#   • Базовые утилиты уровня "core" без зависимостей от FastAPI/SQLAlchemy.
#   • Работа с Decimal (суммы в крипте: до 18 знаков, округление DOWN).
#
# Канон:
#   • Денежные суммы никогда не проходят через float.
#   • Все функции чистые: без сетевых вызовов и без побочных эффектов.
# =============================================================================

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Union

NumberLike = Union[str, int, Decimal]

# Колонки сумм: Numeric(36, 18)
AMOUNT_PRECISION = 36
AMOUNT_SCALE = 18


# -----------------------------------------------------------------------------
# Decimal helpers
# -----------------------------------------------------------------------------
def decimal_from(value: NumberLike) -> Decimal:
    """Приводит значение к Decimal (float сюда не передаём)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def quantize_amount(value: NumberLike, decimals: int = AMOUNT_SCALE) -> Decimal:
    """Округляет сумму DOWN до `decimals` знаков после запятой."""
    d = decimal_from(value)
    # quantize требует precision не меньше числа цифр результата
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, AMOUNT_PRECISION + 4)
        return d.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN)


def format_amount(value: NumberLike, decimals: int = AMOUNT_SCALE) -> str:
    """
    Строковое представление суммы для API: фиксированная точка без хвостовых
    нулей ("1.500000000000000000" → "1.5", "2.000" → "2").
    """
    d = quantize_amount(value, decimals=decimals)
    s = f"{d:.{decimals}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


__all__ = [
    "AMOUNT_PRECISION",
    "AMOUNT_SCALE",
    "decimal_from",
    "quantize_amount",
    "format_amount",
]
