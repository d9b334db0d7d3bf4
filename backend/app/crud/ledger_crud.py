"""CRUD for the deposit ledger tables (addresses, deposits, balances, audit).

======================================================================
Назначение:
    • Низкоуровневый доступ к user_addresses, deposits, user_balances и
      provider_events поверх AsyncSession.
    • Атомарные диалектные upsert'ы: инкремент баланса и вставка адреса
      без дублей (PostgreSQL и SQLite).

Канон/инварианты:
    • CRUD не решает, зачислять ли депозит: это делает сервис; здесь
      только операции над строками.
    • Баланс меняется ТОЛЬКО через credit_balance(). PostgreSQL: INSERT ...
      ON CONFLICT DO UPDATE SET balance = balance + excluded.balance.
      SQLite: сумма хранится строкой, поэтому новое значение считает Decimal
      в приложении; транзакция уже держит блокировку записи (BEGIN IMMEDIATE,
      см. database_core), так что параллельное зачисление не теряется.
    • Повтор blockchain tx hash при вставке депозита → DuplicateEventError.
    • commit/rollback делает вызывающий код (границы транзакции: в сервисе).

Запреты:
    • Нет UPDATE/DELETE для адресов и аудит-записей.
======================================================================
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.errors_core import DuplicateEventError
from backend.app.core.logging_core import get_logger
from backend.app.models import Deposit, ProviderEvent, UserAddress, UserBalance

logger = get_logger(__name__)


def _is_tx_hash_conflict(exc: IntegrityError) -> bool:
    msg = str(exc.orig if exc.orig is not None else exc).lower()
    return "unique" in msg and "blockchain_tx_hash" in msg


class LedgerCRUD:
    """Доступ к таблицам леджера в рамках одной сессии/транзакции."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    def _insert(self, model: Any):
        """INSERT текущего диалекта (нужен для on_conflict_*)."""

        dialect = self.dialect_name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"upsert is not supported for dialect {dialect!r}")

    # ------------------------------------------------------------------
    # Адреса
    # ------------------------------------------------------------------
    async def find_address_owner(self, address: str, currency: str) -> Optional[int]:
        """user_id владельца адреса в валюте или None."""

        stmt = select(UserAddress.user_id).where(
            UserAddress.address == address,
            UserAddress.currency == currency,
        )
        return await self.session.scalar(stmt)

    async def add_user_address(self, user_id: int, currency: str, address: str) -> bool:
        """
        Вставить адрес; при существующей паре (user_id, currency): ничего.

        Возвращает True, если строка действительно добавлена.
        """

        stmt = (
            self._insert(UserAddress)
            .values(user_id=int(user_id), currency=currency, address=address)
            .on_conflict_do_nothing(index_elements=["user_id", "currency"])
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def list_addresses(self, user_id: int) -> list[UserAddress]:
        stmt: Select[Any] = (
            select(UserAddress)
            .where(UserAddress.user_id == int(user_id))
            .order_by(UserAddress.currency)
        )
        return list(await self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Депозиты
    # ------------------------------------------------------------------
    async def deposit_exists(self, tx_hash: str) -> bool:
        """Есть ли уже депозит с этим blockchain tx hash (read-through)."""

        stmt = select(Deposit.id).where(Deposit.blockchain_tx_hash == tx_hash)
        return (await self.session.scalar(stmt)) is not None

    async def add_deposit(
        self,
        *,
        user_id: int,
        provider_event_id: Optional[int],
        currency: str,
        amount: Decimal,
        tx_hash: str,
        status: str,
    ) -> Deposit:
        """
        Записать депозит. Дубликат tx hash падает на UNIQUE при flush и
        поднимается как DuplicateEventError; транзакцию откатывает сервис.
        """

        deposit = Deposit(
            user_id=int(user_id),
            provider_event_id=provider_event_id,
            currency=currency,
            amount=amount,
            blockchain_tx_hash=tx_hash,
            status=status,
        )
        self.session.add(deposit)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if _is_tx_hash_conflict(exc):
                raise DuplicateEventError(details={"txHash": tx_hash}) from exc
            raise
        return deposit

    async def list_deposits(self, user_id: int, *, limit: int) -> list[Deposit]:
        """Последние депозиты пользователя (новые сначала)."""

        stmt: Select[Any] = (
            select(Deposit)
            .where(Deposit.user_id == int(user_id))
            .order_by(Deposit.created_at.desc(), Deposit.id.desc())
            .limit(limit)
        )
        return list(await self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Балансы
    # ------------------------------------------------------------------
    async def credit_balance(self, user_id: int, currency: str, amount: Decimal) -> None:
        """Атомарный upsert-инкремент баланса (user_id, currency) на amount."""

        if self.dialect_name == "sqlite":
            # строковая колонка: складываем Decimal под блокировкой BEGIN IMMEDIATE
            total = await self.get_balance(user_id, currency) + amount
            stmt = self._insert(UserBalance).values(
                user_id=int(user_id),
                currency=currency,
                balance=total,
            )
            new_balance = stmt.excluded.balance
        else:
            stmt = self._insert(UserBalance).values(
                user_id=int(user_id),
                currency=currency,
                balance=amount,
            )
            new_balance = UserBalance.__table__.c.balance + stmt.excluded.balance

        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "currency"],
            set_={"balance": new_balance, "updated_at": func.now()},
        )
        await self.session.execute(stmt)

    async def get_balance(self, user_id: int, currency: str) -> Decimal:
        """Текущий баланс (0, если строки ещё нет)."""

        stmt = select(UserBalance.balance).where(
            UserBalance.user_id == int(user_id),
            UserBalance.currency == currency,
        )
        value = await self.session.scalar(stmt)
        return Decimal(value) if value is not None else Decimal("0")

    async def list_balances(self, user_id: int) -> list[UserBalance]:
        stmt: Select[Any] = (
            select(UserBalance)
            .where(UserBalance.user_id == int(user_id))
            .order_by(UserBalance.currency)
        )
        return list(await self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Аудит провайдера
    # ------------------------------------------------------------------
    async def add_provider_event(self, event_type: str, payload: Dict[str, Any]) -> int:
        """Дописать сырое событие провайдера; возвращает id записи."""

        event = ProviderEvent(event_type=event_type, payload=payload)
        self.session.add(event)
        await self.session.flush()
        return int(event.id)


__all__ = ["LedgerCRUD"]

# ======================================================================
# Пояснения «для чайника»:
#   • Повторная вставка адреса для той же пары пользователь/валюта молча
#     игнорируется (ON CONFLICT DO NOTHING): первый адрес остаётся.
#   • Баланс никогда не перезаписывается «вслепую»: PostgreSQL сам прибавляет
#     сумму к текущему значению, в SQLite сложение идёт под блокировкой
#     записи, поэтому параллельные зачисления не теряются.
# ======================================================================
