# -*- coding: utf-8 -*-
# backend/app/services/deposits_service.py
# =============================================================================
# Deposit Ledger: приём депозитов из вебхуков кастодиального провайдера
# -----------------------------------------------------------------------------
# Назначение:
#   • Вебхук BitGo о переводе ("transfer") превращается в запись deposits и,
#     если перевод подтверждён, в атомарное пополнение user_balances.
#   • Повторная доставка того же события (тот же blockchain tx hash) ничего
#     не меняет.
#
# Канон/инварианты:
#   • Идемпотентность: ключ = blockchain tx hash; deposits.blockchain_tx_hash
#     UNIQUE. Проверка read-through + UNIQUE на случай гонки двух доставок.
#   • Одна транзакция БД на событие: аудит-запись, депозит и инкремент баланса
#     фиксируются вместе или не фиксируются вовсе.
#   • Баланс пополняется ТОЛЬКО для статуса completed и ТОЛЬКО через
#     LedgerCRUD.credit_balance() в той же транзакции.
#   • Бизнес-причины отказа (неизвестная валюта, чужой адрес, дубликат,
#     кривая сумма): это исход IngestOutcome + запись в лог, не исключение.
#
# ИИ-защита:
#   • Ошибка конвертации суммы откатывает всю транзакцию (аудит тоже),
#     повторная доставка упадёт на той же детерминированной проверке.
#   • Прочие ошибки БД → rollback + лог + PersistenceFailure (её ловит канал
#     ошибок фонового исполнителя).
#
# Запреты:
#   • Никаких блокировок уровня приложения: только транзакция и upsert.
#   • Никаких ретраев здесь: повторную доставку делает провайдер.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.errors_core import (
    ConversionError,
    DuplicateEventError,
    PersistenceFailure,
)
from backend.app.core.logging_core import (
    get_logger,
    request_context_scope,
    set_request_context,
)
from backend.app.crud.ledger_crud import LedgerCRUD
from backend.app.models import DepositStatus, ProviderEventType
from backend.app.services.currency_registry import (
    CurrencyDescriptor,
    find_currency,
    map_provider_state,
    to_decimal,
)

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# DTO
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class DepositEvent:
    """Нормализованный вебхук о переводе (неизменяемый)."""

    tx_hash: str
    coin_code: str
    state: str
    receiver_address: str
    raw_value: str
    raw_payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_webhook(cls, payload: Mapping[str, Any]) -> "DepositEvent":
        """Из уже проверенного тела вебхука (поля hash/coin/state/receiver/valueString)."""
        return cls(
            tx_hash=payload["hash"],
            coin_code=payload["coin"],
            state=payload["state"],
            receiver_address=payload["receiver"],
            raw_value=payload["valueString"],
            raw_payload=dict(payload),
        )


class IngestOutcome(str, Enum):
    CREDITED = "credited"
    RECORDED = "recorded"
    UNKNOWN_CURRENCY = "unknown_currency"
    UNTRACKED_ADDRESS = "untracked_address"
    DUPLICATE = "duplicate"
    INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class IngestResult:
    outcome: IngestOutcome
    tx_hash: str
    credited: bool = False
    status: Optional[DepositStatus] = None
    amount: Optional[Decimal] = None
    user_id: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "txHash": self.tx_hash,
            "credited": self.credited,
            "status": self.status.value if self.status else None,
            "amount": str(self.amount) if self.amount is not None else None,
            "userId": self.user_id,
        }


# -----------------------------------------------------------------------------
# Сервис
# -----------------------------------------------------------------------------
class DepositIngestor:
    """
    Обработчик событий депозита. Каждое событие: отдельная сессия и одна
    транзакция, поэтому параллельные вызовы ingest() изолированы друг от друга.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def ingest(self, event: DepositEvent) -> IngestResult:
        with request_context_scope():
            set_request_context(idempotency_key=event.tx_hash)
            return await self._ingest(event)

    async def _ingest(self, event: DepositEvent) -> IngestResult:
        descriptor = find_currency(event.coin_code)
        if descriptor is None:
            logger.warning("Unsupported coin in webhook: %s", event.coin_code)
            return IngestResult(IngestOutcome.UNKNOWN_CURRENCY, event.tx_hash)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    return await self._ingest_in_tx(session, event, descriptor)
        except ConversionError as exc:
            logger.error(
                "Invalid deposit amount %r for tx %s: %s",
                event.raw_value,
                event.tx_hash,
                exc.message,
            )
            return IngestResult(IngestOutcome.INVALID_AMOUNT, event.tx_hash)
        except DuplicateEventError:
            logger.info("Deposit already processed (concurrent delivery): %s", event.tx_hash)
            return IngestResult(IngestOutcome.DUPLICATE, event.tx_hash)
        except IntegrityError as exc:
            logger.error("Deposit storage constraint failed for tx %s: %s", event.tx_hash, exc)
            raise PersistenceFailure(details={"txHash": event.tx_hash}) from exc
        except SQLAlchemyError as exc:
            logger.error("Error processing deposit %s: %s", event.tx_hash, exc)
            raise PersistenceFailure(details={"txHash": event.tx_hash}) from exc

    async def _ingest_in_tx(
        self,
        session: AsyncSession,
        event: DepositEvent,
        descriptor: CurrencyDescriptor,
    ) -> IngestResult:
        crud = LedgerCRUD(session)
        symbol = descriptor.internal_symbol

        user_id = await crud.find_address_owner(event.receiver_address, symbol)
        if user_id is None:
            logger.warning(
                "No user found for address: %s with currency: %s",
                event.receiver_address,
                symbol,
            )
            return IngestResult(IngestOutcome.UNTRACKED_ADDRESS, event.tx_hash)
        set_request_context(user_id=user_id)

        if await crud.deposit_exists(event.tx_hash):
            logger.info("Deposit already processed: %s", event.tx_hash)
            return IngestResult(IngestOutcome.DUPLICATE, event.tx_hash, user_id=user_id)

        provider_event_id = await crud.add_provider_event(
            ProviderEventType.CRYPTO_DEPOSIT.value,
            dict(event.raw_payload),
        )

        # ConversionError отсюда откатывает и аудит-запись
        amount = to_decimal(event.raw_value, descriptor)
        status = map_provider_state(event.state)

        await crud.add_deposit(
            user_id=user_id,
            provider_event_id=provider_event_id,
            currency=symbol,
            amount=amount,
            tx_hash=event.tx_hash,
            status=status.value,
        )

        credited = status is DepositStatus.COMPLETED
        if credited:
            await crud.credit_balance(user_id, symbol, amount)
            logger.info("Balance updated for user %s: +%s %s", user_id, amount, symbol)

        logger.info(
            "Deposit processed: %s %s for user %s, status: %s",
            amount,
            symbol,
            user_id,
            status.value,
        )
        return IngestResult(
            IngestOutcome.CREDITED if credited else IngestOutcome.RECORDED,
            event.tx_hash,
            credited=credited,
            status=status,
            amount=amount,
            user_id=user_id,
        )


__all__ = ["DepositEvent", "DepositIngestor", "IngestOutcome", "IngestResult"]

# =============================================================================
# Пояснения «для чайника»:
#   • Провайдер может прислать один и тот же вебхук несколько раз: второй раз
#     депозит не создаётся и баланс не растёт (исход DUPLICATE).
#   • Перевод в состоянии pending/unconfirmed/failed записывается, но деньги
#     на баланс не идут. Повторный вебхук с тем же tx hash (даже confirmed)
#     считается дубликатом: pending → completed здесь не переводится.
#   • Баланс всегда равен сумме completed-депозитов пользователя в валюте.
# =============================================================================
