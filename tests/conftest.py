# -*- coding: utf-8 -*-
# tests/conftest.py
# =============================================================================
# Общие фикстуры тестов Deposit Ledger.
#   • Окружение задаётся ДО импорта backend.app (настройки кэшируются).
#   • Каждый тест получает свою файловую SQLite (sqlite+aiosqlite) в tmp_path.
#   • Провайдер адресов подменяется FakeCreator (без сети).
# =============================================================================

from __future__ import annotations

import os
import tempfile
from pathlib import Path

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + str(
    Path(tempfile.gettempdir()) / "deposit-ledger-tests.db"
)
os.environ["DB_SCHEMA_CORE"] = ""
os.environ["BITGO_ACCESS_TOKEN"] = "test-token"
os.environ["BTC_WALLET_ID"] = "wallet-btc"
os.environ["ADA_WALLET_ID"] = "wallet-ada"
os.environ["SOL_WALLET_ID"] = "wallet-sol"
os.environ["DOGE_WALLET_ID"] = "wallet-doge"
os.environ["LOG_FILE"] = ""

from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Set, Tuple  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from backend.app import create_app  # noqa: E402
from backend.app import deps  # noqa: E402
from backend.app.core.database_core import (  # noqa: E402
    Base,
    build_engine,
    create_session_factory,
    dispose_engine,
)
from backend.app.core.errors_core import ProviderFailure  # noqa: E402
from backend.app.crud.ledger_crud import LedgerCRUD  # noqa: E402
from backend.app.services.address_service import (  # noqa: E402
    AddressProvisioner,
    ProvisionerConfig,
    WalletTarget,
)
from backend.app.services.deposits_service import DepositEvent, DepositIngestor  # noqa: E402

WALLETS: Tuple[WalletTarget, ...] = (
    WalletTarget("tbtc4", "wallet-btc"),
    WalletTarget("tada", "wallet-ada"),
    WalletTarget("tsol", "wallet-sol"),
    WalletTarget("tdoge", "wallet-doge"),
)


class FakeCreator:
    """Провайдер адресов в памяти: coin из fail → ProviderFailure."""

    def __init__(self) -> None:
        self.fail: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []

    async def create_address(self, coin: str, wallet_id: str) -> str:
        self.calls.append((coin, wallet_id))
        if coin in self.fail:
            raise ProviderFailure("BitGo responded with HTTP 500", coin=coin, body='{"error":"boom"}')
        return f"{coin}-addr-{len(self.calls)}"


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def ingestor(session_factory: async_sessionmaker[AsyncSession]) -> DepositIngestor:
    return DepositIngestor(session_factory)


@pytest.fixture
def fake_creator() -> FakeCreator:
    return FakeCreator()


@pytest.fixture
def provisioner(
    session_factory: async_sessionmaker[AsyncSession],
    fake_creator: FakeCreator,
) -> AddressProvisioner:
    config = ProvisionerConfig(wallets=WALLETS, access_token="test-token")
    return AddressProvisioner(config, fake_creator, session_factory)


@pytest.fixture
def seed_address(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[int, str, str], Awaitable[None]]:
    async def _seed(user_id: int, currency: str, address: str) -> None:
        async with session_factory() as session:
            async with session.begin():
                await LedgerCRUD(session).add_user_address(user_id, currency, address)

    return _seed


@pytest.fixture
def balance_of(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[int, str], Awaitable[Any]]:
    async def _balance(user_id: int, currency: str) -> Any:
        async with session_factory() as session:
            return await LedgerCRUD(session).get_balance(user_id, currency)

    return _balance


@pytest.fixture
def count_rows(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[Any], Awaitable[int]]:
    async def _count(model: Any) -> int:
        async with session_factory() as session:
            return int(await session.scalar(select(func.count()).select_from(model)))

    return _count


def transfer_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": "transfer",
        "hash": "tx-1",
        "coin": "tbtc4",
        "state": "confirmed",
        "receiver": "addr-btc-1",
        "valueString": "150000000",
        "wallet": "wallet-btc",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_payload() -> Callable[..., Dict[str, Any]]:
    return transfer_payload


@pytest.fixture
def make_event() -> Callable[..., DepositEvent]:
    def _event(**overrides: Any) -> DepositEvent:
        return DepositEvent.from_webhook(transfer_payload(**overrides))

    return _event


@pytest.fixture
def app(
    session_factory: async_sessionmaker[AsyncSession],
    ingestor: DepositIngestor,
    provisioner: AddressProvisioner,
) -> FastAPI:
    app = create_app()

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_deposit_ingestor] = lambda: ingestor
    app.dependency_overrides[deps.get_address_provisioner] = lambda: provisioner
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    await app.state.background_runner.drain(timeout=5)
    await dispose_engine()
