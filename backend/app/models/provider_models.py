# -*- coding: utf-8 -*-
# backend/app/models/provider_models.py
# =============================================================================
# Назначение кода:
#   ORM-модель журнала сырых событий кастодиального провайдера (BitGo):
#   • ProviderEvent: копия входящего вебхука депозита или результата выдачи
#     адреса, как она пришла/ушла.
#
# Канон/инварианты:
#   • Журнал только дописывается (append-only): UPDATE/DELETE не выполняются.
#   • event_type: белый список ('crypto_deposit' | 'address_generation').
#   • payload: JSONB в PostgreSQL, JSON в остальных диалектах.
#
# Запреты:
#   • Никакой бизнес-логики в модели: только хранение факта.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from sqlalchemy import JSON, BigInteger, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ..core.config_core import get_settings
from ..core.database_core import Base

settings = get_settings()
CORE_SCHEMA = settings.schema_core

# BIGINT в PostgreSQL; в SQLite автоинкремент работает только у INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JsonPayload = JSON().with_variant(JSONB(), "postgresql")


class ProviderEventType(str, Enum):
    CRYPTO_DEPOSIT = "crypto_deposit"
    ADDRESS_GENERATION = "address_generation"


class ProviderEvent(Base):
    """
    Аудит-запись события провайдера.

    Поля:
      • event_type: 'crypto_deposit' (вебхук перевода) или
                     'address_generation' (выдан адрес пользователю);
      • payload: исходное тело события без изменений.
    """

    __tablename__ = "provider_events"
    __table_args__ = (
        CheckConstraint(
            "event_type IN ('crypto_deposit','address_generation')",
            name="event_type_enum",
        ),
        {"schema": CORE_SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JsonPayload, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ProviderEvent id={self.id} type={self.event_type}>"


__all__ = ["ProviderEvent", "ProviderEventType", "BigIntPK", "JsonPayload", "CORE_SCHEMA"]
