# -*- coding: utf-8 -*-
# backend/app/schemas/wallet_schemas.py
# =============================================================================
# Назначение кода:
# Pydantic-схемы витрин кошелька пользователя: адреса приёма, балансы,
# последние депозиты и ответ на запуск выдачи адресов.
#
# Канон / инварианты:
# • Все суммы наружу: СТРОКА (Decimal без хвостовых нулей), не float.
# • Схемы читаются прямо из ORM-объектов (from_attributes=True).
#
# Запреты:
# • Никакой бизнес-логики/перерасчётов в схемах: только форма данных.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from backend.app.core.utils_core import format_amount


class AddressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str = Field(..., description="Внутренний символ валюты (TBTC4, TSOL, ...)")
    address: str = Field(..., description="Адрес приёма депозитов")
    created_at: datetime


class BalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str
    balance: Decimal = Field(..., description="Баланс строкой")
    updated_at: datetime

    @field_serializer("balance")
    def _ser_balance(self, value: Decimal) -> str:
        return format_amount(value)


class DepositOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str
    amount: Decimal = Field(..., description="Сумма строкой")
    blockchain_tx_hash: str
    status: str = Field(..., description="pending | completed | failed")
    created_at: datetime

    @field_serializer("amount")
    def _ser_amount(self, value: Decimal) -> str:
        return format_amount(value)


class AddressList(BaseModel):
    user_id: int
    items: List[AddressOut]


class BalanceList(BaseModel):
    user_id: int
    items: List[BalanceOut]


class DepositList(BaseModel):
    user_id: int
    items: List[DepositOut]


class ProvisionAccepted(BaseModel):
    success: bool = True
    message: str = "Address provisioning started"
    user_id: int


__all__ = [
    "AddressOut",
    "BalanceOut",
    "DepositOut",
    "AddressList",
    "BalanceList",
    "DepositList",
    "ProvisionAccepted",
]
