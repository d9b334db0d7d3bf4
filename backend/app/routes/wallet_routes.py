# -*- coding: utf-8 -*-
# backend/app/routes/wallet_routes.py
# =============================================================================
# Назначение кода:
#   • Витрины кошелька пользователя: адреса приёма, балансы, последние депозиты.
#   • Запуск выдачи адресов новому пользователю (вызывает поток регистрации).
#
# Канон/инварианты:
#   • Все суммы: строки (Decimal без потерь).
#   • Выдача адресов: фоновая задача: ответ 202 сразу, исход: в логах.
#
# Запреты:
#   • Нет денежных операций и правок балансов: только чтение.
#   • Аутентификация: внешний слой (не здесь).
# =============================================================================

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.background_core import BackgroundRunner
from backend.app.core.logging_core import get_logger
from backend.app.crud.ledger_crud import LedgerCRUD
from backend.app.deps import get_address_provisioner, get_background_runner, get_db, list_limit
from backend.app.schemas.wallet_schemas import (
    AddressList,
    AddressOut,
    BalanceList,
    BalanceOut,
    DepositList,
    DepositOut,
    ProvisionAccepted,
)
from backend.app.services.address_service import AddressProvisioner

logger = get_logger(__name__)
router = APIRouter(prefix="/wallets", tags=["wallets"])

UserId = Annotated[int, Path(ge=1, description="Внутренний ID пользователя")]


@router.post(
    "/{user_id}/addresses/provision",
    response_model=ProvisionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Запустить выдачу адресов приёма пользователю",
)
async def provision_addresses(
    user_id: UserId,
    runner: BackgroundRunner = Depends(get_background_runner),
    provisioner: AddressProvisioner = Depends(get_address_provisioner),
) -> ProvisionAccepted:
    runner.submit(provisioner.provision(user_id), name=f"provision:{user_id}")
    logger.info("Address provisioning submitted for user %s", user_id)
    return ProvisionAccepted(user_id=user_id)


@router.get("/{user_id}/addresses", response_model=AddressList)
async def get_addresses(
    user_id: UserId,
    db: AsyncSession = Depends(get_db),
) -> AddressList:
    rows = await LedgerCRUD(db).list_addresses(user_id)
    return AddressList(user_id=user_id, items=[AddressOut.model_validate(r) for r in rows])


@router.get("/{user_id}/balances", response_model=BalanceList)
async def get_balances(
    user_id: UserId,
    db: AsyncSession = Depends(get_db),
) -> BalanceList:
    rows = await LedgerCRUD(db).list_balances(user_id)
    return BalanceList(user_id=user_id, items=[BalanceOut.model_validate(r) for r in rows])


@router.get("/{user_id}/deposits", response_model=DepositList)
async def get_deposits(
    user_id: UserId,
    limit: int = Depends(list_limit),
    db: AsyncSession = Depends(get_db),
) -> DepositList:
    """Последние депозиты пользователя, новые сначала."""
    rows = await LedgerCRUD(db).list_deposits(user_id, limit=limit)
    return DepositList(user_id=user_id, items=[DepositOut.model_validate(r) for r in rows])


__all__ = ["router"]
