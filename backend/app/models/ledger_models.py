# -*- coding: utf-8 -*-
# backend/app/models/ledger_models.py
# =============================================================================
# Назначение кода:
#   ORM-модели леджера депозитов:
#   • UserAddress: адрес приёма пользователя в конкретной валюте;
#   • Deposit: зафиксированный депозит (по blockchain tx hash);
#   • UserBalance: накопленный баланс пользователя по валюте.
#
# Канон/инварианты:
#   • Идемпотентность на уровне БД: deposits.blockchain_tx_hash UNIQUE.
#   • Не более одного адреса на пару (user_id, currency): UNIQUE + вставка
#     ON CONFLICT DO NOTHING; адреса после записи не меняются.
#   • Баланс: одна строка на (user_id, currency), меняется только атомарным
#     upsert-инкрементом (balance = balance + excluded.balance).
#   • Денежная точность: Numeric(36,18), 18 знаков покрывают минимальные
#     единицы всех поддерживаемых валют. В SQLite NUMERIC хранится как REAL,
#     поэтому там сумма лежит строкой фиксированной точки (тип Amount).
#
# Запреты:
#   • Никакой бизнес-логики и пересчётов в модели: только хранение.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    TypeDecorator,
    UniqueConstraint,
    func,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import Base
from ..core.utils_core import AMOUNT_PRECISION, AMOUNT_SCALE, format_amount
from .provider_models import CORE_SCHEMA, BigIntPK


def _fq(table: str) -> str:
    """Имя таблицы со схемой (если схема задана): для ForeignKey."""
    return f"{CORE_SCHEMA}.{table}" if CORE_SCHEMA else table


class Amount(TypeDecorator):
    """
    Денежная сумма (Decimal, до 18 знаков после запятой).

    PostgreSQL: NUMERIC(36,18), арифметика в SQL точная.
    SQLite: строка без хвостовых нулей ("0.3", "12"). Такие строки
    сравниваются с '0' в CHECK так же, как числа, а сложение делает
    приложение (см. LedgerCRUD.credit_balance).
    """

    impl = Numeric(AMOUNT_PRECISION, AMOUNT_SCALE)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> Any:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(AMOUNT_PRECISION + 2))
        return dialect.type_descriptor(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None or dialect.name != "sqlite":
            return value
        return format_amount(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(str(value)) if dialect.name == "sqlite" else value


class DepositStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class UserAddress(Base):
    """Адрес приёма депозитов (выдан BitGo) для пары пользователь/валюта."""

    __tablename__ = "user_addresses"
    __table_args__ = (
        UniqueConstraint("user_id", "currency"),
        {"schema": CORE_SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    # Внутренний символ валюты (TBTC4, TSOL, ...)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    address: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserAddress uid={self.user_id} {self.currency} {self.address}>"


class Deposit(Base):
    """
    Депозит, пришедший вебхуком провайдера.

    status: pending | completed | failed. Баланс пополняется только для completed.
    """

    __tablename__ = "deposits"
    __table_args__ = (
        UniqueConstraint("blockchain_tx_hash"),
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint(
            "status IN ('pending','completed','failed')",
            name="status_enum",
        ),
        {"schema": CORE_SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    # Ссылка на аудит-запись сырого вебхука
    provider_event_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey(_fq("provider_events") + ".id"), nullable=True
    )
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Amount(), nullable=False)
    blockchain_tx_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Deposit tx={self.blockchain_tx_hash} {self.amount} {self.currency} {self.status}>"


class UserBalance(Base):
    """Баланс пользователя в валюте (сумма completed-депозитов)."""

    __tablename__ = "user_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "currency"),
        CheckConstraint("balance >= 0", name="balance_nonneg"),
        {"schema": CORE_SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    balance: Mapped[Decimal] = mapped_column(
        Amount(), nullable=False, default=Decimal("0"), server_default="0"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserBalance uid={self.user_id} {self.currency} {self.balance}>"


__all__ = ["Amount", "DepositStatus", "UserAddress", "Deposit", "UserBalance"]
