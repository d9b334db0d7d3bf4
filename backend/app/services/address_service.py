# -*- coding: utf-8 -*-
# backend/app/services/address_service.py
# =============================================================================
# Deposit Ledger: выдача адресов приёма новым пользователям
# -----------------------------------------------------------------------------
# Назначение:
#   • Для нового пользователя запросить у BitGo по одному адресу на каждую
#     настроенную валюту (параллельно) и сохранить успешные результаты.
#
# Канон/инварианты:
#   • Best-effort: отказ провайдера по одной валюте не отменяет остальные и
#     не пробрасывается наружу; provision() не бросает исключений.
#   • Все успешные адреса сохраняются одной транзакцией: либо все, либо ничего.
#   • Не более одного адреса на (user_id, currency): INSERT ON CONFLICT DO
#     NOTHING, повторный provision() не создаёт дублей и не меняет адрес.
#   • Каждый сохранённый адрес сопровождается аудит-записью
#     provider_events('address_generation').
#
# ИИ-защита:
#   • Нет BITGO_ACCESS_TOKEN → выдача адресов пропускается с ошибкой в логе.
#   • Монета кошелька, которой нет в реестре валют, пропускается с warning.
#
# Запреты:
#   • Никаких ретраев/backoff к провайдеру: одна попытка на валюту.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config_core import Settings, get_settings
from backend.app.core.errors_core import ProviderFailure
from backend.app.core.logging_core import (
    get_logger,
    request_context_scope,
    set_request_context,
)
from backend.app.crud.ledger_crud import LedgerCRUD
from backend.app.models import ProviderEventType
from backend.app.services.currency_registry import CurrencyDescriptor, find_currency

logger = get_logger(__name__)


class AddressCreator(Protocol):
    """Способность провайдера выдать адрес: create_address(coin, wallet) -> address."""

    async def create_address(self, coin: str, wallet_id: str) -> str: ...


@dataclass(frozen=True)
class WalletTarget:
    coin: str
    wallet_id: str


@dataclass(frozen=True)
class ProvisionerConfig:
    """Кошельки провайдера и токен доступа (явная конфигурация, без глобалей)."""

    wallets: Tuple[WalletTarget, ...]
    access_token: Optional[str]

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProvisionerConfig":
        s = settings or get_settings()
        return cls(
            wallets=tuple(WalletTarget(coin, wallet_id) for coin, wallet_id in s.wallet_targets()),
            access_token=s.BITGO_ACCESS_TOKEN,
        )


@dataclass(frozen=True)
class ProvisionReport:
    user_id: int
    persisted: Tuple[str, ...] = ()
    failed: Tuple[str, ...] = ()
    stored: bool = False


@dataclass(frozen=True)
class _Created:
    descriptor: CurrencyDescriptor
    address: str


class AddressProvisioner:
    """Параллельная best-effort выдача адресов + атомарное сохранение."""

    def __init__(
        self,
        config: ProvisionerConfig,
        creator: AddressCreator,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.config = config
        self.creator = creator
        self._session_factory = session_factory

    async def provision(self, user_id: int) -> ProvisionReport:
        with request_context_scope():
            set_request_context(user_id=user_id)
            return await self._provision(user_id)

    async def _provision(self, user_id: int) -> ProvisionReport:
        if not self.config.access_token:
            logger.error("BitGo access token not configured; skipping address generation")
            return ProvisionReport(user_id=user_id)

        targets: List[Tuple[WalletTarget, CurrencyDescriptor]] = []
        for target in self.config.wallets:
            if not target.wallet_id:
                continue
            descriptor = find_currency(target.coin)
            if descriptor is None:
                logger.warning("Wallet coin %s is not a supported currency; skipping", target.coin)
                continue
            targets.append((target, descriptor))

        results = await asyncio.gather(
            *(self._create_one(user_id, target, descriptor) for target, descriptor in targets)
        )
        created = [item for item in results if isinstance(item, _Created)]
        failed = tuple(target.coin for (target, _), item in zip(targets, results) if item is None)

        if not created:
            logger.warning("No addresses generated for user %s", user_id)
            return ProvisionReport(user_id=user_id, failed=failed)

        inserted: List[str] = []
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    crud = LedgerCRUD(session)
                    for item in created:
                        symbol = item.descriptor.internal_symbol
                        if await crud.add_user_address(user_id, symbol, item.address):
                            inserted.append(symbol)
                        else:
                            logger.info("User %s already has a %s address; kept existing", user_id, symbol)
                        await crud.add_provider_event(
                            ProviderEventType.ADDRESS_GENERATION.value,
                            {
                                "userId": user_id,
                                "coin": item.descriptor.external_code,
                                "address": item.address,
                            },
                        )
        except SQLAlchemyError as exc:
            logger.error("Error storing addresses for user %s: %s", user_id, exc)
            return ProvisionReport(user_id=user_id, failed=failed)

        persisted = tuple(inserted)
        logger.info(
            "Created %d addresses for user %s: %s",
            len(persisted),
            user_id,
            ", ".join(persisted) or "-",
        )
        return ProvisionReport(user_id=user_id, persisted=persisted, failed=failed, stored=True)

    async def _create_one(
        self,
        user_id: int,
        target: WalletTarget,
        descriptor: CurrencyDescriptor,
    ) -> Optional[_Created]:
        """Один вызов провайдера; любая ошибка → None + лог, соседи не страдают."""
        try:
            address = await self.creator.create_address(target.coin, target.wallet_id)
        except ProviderFailure as exc:
            logger.error(
                "Failed to generate %s address for user %s: %s; response: %s",
                target.coin,
                user_id,
                exc.message,
                exc.body or "-",
            )
            return None
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to generate %s address for user %s: %s",
                target.coin,
                user_id,
                exc,
            )
            return None
        logger.info("Generated %s address for user %s: %s", target.coin, user_id, address)
        return _Created(descriptor=descriptor, address=address)


__all__ = [
    "AddressCreator",
    "AddressProvisioner",
    "ProvisionerConfig",
    "ProvisionReport",
    "WalletTarget",
]

# =============================================================================
# Пояснения «для чайника»:
#   • Если BitGo не ответил по одной из валют, у пользователя просто не будет
#     адреса в этой валюте: остальные адреса всё равно сохранятся.
#   • Повторный вызов для того же пользователя безопасен: существующие адреса
#     не перезаписываются, недостающие добавятся.
# =============================================================================
