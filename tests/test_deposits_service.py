import asyncio
import logging
from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.app.core.database_core import build_engine, create_session_factory
from backend.app.core.errors_core import DuplicateEventError, PersistenceFailure
from backend.app.core.logging_core import ContextFilter, clear_request_context, set_request_context
from backend.app.crud.ledger_crud import LedgerCRUD
from backend.app.models import Deposit, DepositStatus, ProviderEvent, ProviderEventType
from backend.app.services.deposits_service import DepositIngestor, IngestOutcome, IngestResult


async def test_confirmed_deposit_is_credited(ingestor, seed_address, make_event, balance_of, session_factory):
    await seed_address(7, "TBTC4", "addr-btc-1")

    result = await ingestor.ingest(make_event())

    assert result.outcome is IngestOutcome.CREDITED
    assert result.credited is True
    assert result.amount == Decimal("1.5")
    assert result.user_id == 7
    assert await balance_of(7, "TBTC4") == Decimal("1.5")

    async with session_factory() as session:
        deposit = (await session.scalars(select(Deposit))).one()
        event = (await session.scalars(select(ProviderEvent))).one()
    assert deposit.status == DepositStatus.COMPLETED.value
    assert deposit.blockchain_tx_hash == "tx-1"
    assert deposit.currency == "TBTC4"
    assert deposit.provider_event_id == event.id
    assert event.event_type == ProviderEventType.CRYPTO_DEPOSIT.value
    assert event.payload["hash"] == "tx-1"


@pytest.mark.parametrize(
    "state,status",
    [
        ("pending", DepositStatus.PENDING),
        ("unconfirmed", DepositStatus.PENDING),
        ("failed", DepositStatus.FAILED),
        ("something-new", DepositStatus.PENDING),
    ],
)
async def test_non_confirmed_deposit_is_recorded_only(
    ingestor, seed_address, make_event, balance_of, state, status
):
    await seed_address(7, "TBTC4", "addr-btc-1")

    result = await ingestor.ingest(make_event(state=state))

    assert result.outcome is IngestOutcome.RECORDED
    assert result.status is status
    assert result.credited is False
    assert await balance_of(7, "TBTC4") == Decimal("0")


async def test_unknown_currency_writes_nothing(ingestor, seed_address, make_event, count_rows):
    await seed_address(7, "TBTC4", "addr-btc-1")

    result = await ingestor.ingest(make_event(coin="tltc"))

    assert result.outcome is IngestOutcome.UNKNOWN_CURRENCY
    assert await count_rows(ProviderEvent) == 0
    assert await count_rows(Deposit) == 0


async def test_untracked_address_writes_nothing(ingestor, seed_address, make_event, count_rows):
    await seed_address(7, "TBTC4", "addr-btc-1")

    result = await ingestor.ingest(make_event(receiver="somebody-else"))

    assert result.outcome is IngestOutcome.UNTRACKED_ADDRESS
    assert await count_rows(ProviderEvent) == 0
    assert await count_rows(Deposit) == 0


async def test_address_of_other_currency_is_untracked(ingestor, seed_address, make_event):
    await seed_address(7, "TSOL", "addr-btc-1")

    result = await ingestor.ingest(make_event())

    assert result.outcome is IngestOutcome.UNTRACKED_ADDRESS


async def test_redelivery_is_duplicate(ingestor, seed_address, make_event, balance_of, count_rows):
    await seed_address(7, "TBTC4", "addr-btc-1")

    first = await ingestor.ingest(make_event())
    second = await ingestor.ingest(make_event())

    assert first.outcome is IngestOutcome.CREDITED
    assert second.outcome is IngestOutcome.DUPLICATE
    assert await balance_of(7, "TBTC4") == Decimal("1.5")
    assert await count_rows(Deposit) == 1
    assert await count_rows(ProviderEvent) == 1


async def test_later_state_change_for_same_hash_is_duplicate(ingestor, seed_address, make_event, balance_of):
    await seed_address(7, "TBTC4", "addr-btc-1")

    await ingestor.ingest(make_event(state="pending"))
    result = await ingestor.ingest(make_event(state="confirmed"))

    assert result.outcome is IngestOutcome.DUPLICATE
    assert await balance_of(7, "TBTC4") == Decimal("0")


@pytest.mark.parametrize("raw", ["0", "-5", "abc"])
async def test_invalid_amount_rolls_back(ingestor, seed_address, make_event, count_rows, caplog, raw):
    await seed_address(7, "TBTC4", "addr-btc-1")

    with caplog.at_level(logging.ERROR):
        result = await ingestor.ingest(make_event(valueString=raw))

    assert result.outcome is IngestOutcome.INVALID_AMOUNT
    assert await count_rows(Deposit) == 0
    assert await count_rows(ProviderEvent) == 0
    assert any("Invalid deposit amount" in r.getMessage() for r in caplog.records)


async def test_deposits_accumulate_per_currency(ingestor, seed_address, make_event, balance_of):
    await seed_address(7, "TBTC4", "addr-btc-1")
    await seed_address(7, "TSOL", "addr-sol-1")

    await ingestor.ingest(make_event(hash="tx-a", valueString="25000000"))
    await ingestor.ingest(make_event(hash="tx-b", valueString="50000000"))
    await ingestor.ingest(
        make_event(hash="tx-c", coin="tsol", receiver="addr-sol-1", valueString="500000000")
    )

    assert await balance_of(7, "TBTC4") == Decimal("0.75")
    assert await balance_of(7, "TSOL") == Decimal("0.5")


async def test_parallel_distinct_deposits_all_credited(ingestor, seed_address, make_event, balance_of):
    await seed_address(7, "TBTC4", "addr-btc-1")
    n = 8

    results = await asyncio.gather(
        *(ingestor.ingest(make_event(hash=f"tx-{i}", valueString="25000000")) for i in range(n))
    )

    assert all(r.outcome is IngestOutcome.CREDITED for r in results)
    assert await balance_of(7, "TBTC4") == Decimal("0.25") * n


async def test_parallel_redelivery_credits_once(ingestor, seed_address, make_event, balance_of, count_rows):
    await seed_address(7, "TBTC4", "addr-btc-1")

    results = await asyncio.gather(*(ingestor.ingest(make_event()) for _ in range(6)))

    outcomes = [r.outcome for r in results]
    assert outcomes.count(IngestOutcome.CREDITED) == 1
    assert outcomes.count(IngestOutcome.DUPLICATE) == 5
    assert await balance_of(7, "TBTC4") == Decimal("1.5")
    assert await count_rows(Deposit) == 1


async def test_storage_failure_raises_persistence_failure(tmp_path, make_event):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        ingestor = DepositIngestor(create_session_factory(engine))
        with pytest.raises(PersistenceFailure) as info:
            await ingestor.ingest(make_event())
        assert info.value.details == {"txHash": "tx-1"}
    finally:
        await engine.dispose()


async def test_balance_is_exact_sum_of_deposits(ingestor, seed_address, make_event, balance_of):
    await seed_address(7, "TDOGE", "addr-doge-1")

    await ingestor.ingest(make_event(hash="tx-a", coin="tdoge", receiver="addr-doge-1", valueString="10000000"))
    await ingestor.ingest(make_event(hash="tx-b", coin="tdoge", receiver="addr-doge-1", valueString="20000000"))

    assert await balance_of(7, "TDOGE") == Decimal("0.3")


async def test_largest_amount_is_stored_without_rounding(ingestor, seed_address, make_event, balance_of, session_factory):
    await seed_address(7, "TBTC4", "addr-btc-1")

    result = await ingestor.ingest(make_event(valueString="9" * 26))

    assert result.outcome is IngestOutcome.CREDITED
    assert await balance_of(7, "TBTC4") == Decimal("999999999999999999.99999999")
    async with session_factory() as session:
        stored = await session.scalar(select(Deposit.amount))
    assert stored == Decimal("999999999999999999.99999999")


async def test_oversized_amount_is_rejected(ingestor, seed_address, make_event, balance_of, count_rows):
    await seed_address(7, "TBTC4", "addr-btc-1")

    result = await ingestor.ingest(make_event(valueString="9" * 60))

    assert result.outcome is IngestOutcome.INVALID_AMOUNT
    assert await count_rows(Deposit) == 0
    assert await balance_of(7, "TBTC4") == Decimal("0")


async def test_second_insert_of_same_hash_raises_duplicate(session_factory):
    async with session_factory() as session:
        async with session.begin():
            await LedgerCRUD(session).add_deposit(
                user_id=7,
                provider_event_id=None,
                currency="TBTC4",
                amount=Decimal("1.5"),
                tx_hash="tx-1",
                status=DepositStatus.COMPLETED.value,
            )

    with pytest.raises(DuplicateEventError) as info:
        async with session_factory() as session:
            async with session.begin():
                await LedgerCRUD(session).add_deposit(
                    user_id=8,
                    provider_event_id=None,
                    currency="TBTC4",
                    amount=Decimal("2"),
                    tx_hash="tx-1",
                    status=DepositStatus.PENDING.value,
                )
    assert info.value.details == {"txHash": "tx-1"}


async def test_ingest_restores_caller_log_context(ingestor, seed_address, make_event):
    await seed_address(7, "TBTC4", "addr-btc-1")
    log_filter = ContextFilter(env="dev", service="Deposit Ledger")
    set_request_context(request_id="rid-1")
    try:
        await ingestor.ingest(make_event())
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "after", None, None)
        log_filter.filter(record)
    finally:
        clear_request_context()

    assert (record.rid, record.idk, record.uid) == ("rid-1", "-", "-")


def test_result_as_dict():
    result = IngestResult(
        IngestOutcome.CREDITED,
        "tx-1",
        credited=True,
        status=DepositStatus.COMPLETED,
        amount=Decimal("1.5"),
        user_id=7,
    )
    assert result.as_dict() == {
        "outcome": "credited",
        "txHash": "tx-1",
        "credited": True,
        "status": "completed",
        "amount": "1.5",
        "userId": 7,
    }
