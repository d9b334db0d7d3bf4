# -*- coding: utf-8 -*-
# backend/app/deps.py
# =============================================================================
# Deposit Ledger: общие зависимости FastAPI: БД-сессия, фоновый исполнитель,
#                  сервисы леджера (ингестор депозитов, выдача адресов).
# -----------------------------------------------------------------------------
# Канон/требования:
#   • Роуты получают сервисы только через Depends: в тестах их подменяют
#     через app.dependency_overrides.
#   • Фоновый исполнитель один на приложение (app.state.background_runner).
#
# Этот модуль НЕ делает бизнес-логику, только сборку зависимостей.
# =============================================================================
from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.background_core import BackgroundRunner
from backend.app.core.database_core import get_db as _core_get_db
from backend.app.core.database_core import get_session_factory
from backend.app.integrations.bitgo_api import BitGoClient
from backend.app.services.address_service import AddressProvisioner, ProvisionerConfig
from backend.app.services.deposits_service import DepositIngestor

MAX_LIST_LIMIT = 200


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Выдаёт AsyncSession для роутов.
    • Роут сам решает: коммитить или нет (паттерн unit of work).
    """
    async for session in _core_get_db():
        yield session


def get_background_runner(request: Request) -> BackgroundRunner:
    return request.app.state.background_runner


def get_deposit_ingestor() -> DepositIngestor:
    return DepositIngestor(get_session_factory())


def get_bitgo_client() -> BitGoClient:
    return BitGoClient()


def get_address_provisioner(
    client: BitGoClient = Depends(get_bitgo_client),
) -> AddressProvisioner:
    return AddressProvisioner(
        ProvisionerConfig.from_settings(),
        client,
        get_session_factory(),
    )


def list_limit(limit: int = Query(50, ge=1, le=MAX_LIST_LIMIT)) -> int:
    """Лимит для витринных списков (1..200)."""
    return int(limit)


__all__ = [
    "get_db",
    "get_background_runner",
    "get_deposit_ingestor",
    "get_bitgo_client",
    "get_address_provisioner",
    "list_limit",
]
