import logging

from sqlalchemy import select

from backend.app.core.config_core import Settings
from backend.app.core.database_core import build_engine, create_session_factory
from backend.app.core.logging_core import ContextFilter, clear_request_context, set_request_context
from backend.app.crud.ledger_crud import LedgerCRUD
from backend.app.models import ProviderEvent, ProviderEventType, UserAddress
from backend.app.services.address_service import (
    AddressProvisioner,
    ProvisionerConfig,
    WalletTarget,
)


async def _addresses(session_factory, user_id):
    async with session_factory() as session:
        rows = await LedgerCRUD(session).list_addresses(user_id)
    return {row.currency: row.address for row in rows}


async def test_all_wallets_provisioned(provisioner, fake_creator, session_factory):
    report = await provisioner.provision(42)

    assert report.stored is True
    assert set(report.persisted) == {"TBTC4", "TADA", "TSOL", "TDOGE"}
    assert report.failed == ()
    assert sorted(coin for coin, _ in fake_creator.calls) == ["tada", "tbtc4", "tdoge", "tsol"]
    assert set((await _addresses(session_factory, 42)).keys()) == {"TBTC4", "TADA", "TSOL", "TDOGE"}

    async with session_factory() as session:
        events = list(await session.scalars(select(ProviderEvent)))
    assert len(events) == 4
    assert {e.event_type for e in events} == {ProviderEventType.ADDRESS_GENERATION.value}
    assert {e.payload["userId"] for e in events} == {42}


async def test_partial_failure_keeps_successes(provisioner, fake_creator, session_factory, caplog):
    fake_creator.fail = {"tada", "tdoge"}

    with caplog.at_level(logging.ERROR):
        report = await provisioner.provision(42)

    assert report.stored is True
    assert set(report.persisted) == {"TBTC4", "TSOL"}
    assert report.failed == ("tada", "tdoge")
    assert set((await _addresses(session_factory, 42)).keys()) == {"TBTC4", "TSOL"}
    assert any('{"error":"boom"}' in r.getMessage() for r in caplog.records)


async def test_all_failures_store_nothing(provisioner, fake_creator, count_rows):
    fake_creator.fail = {"tbtc4", "tada", "tsol", "tdoge"}

    report = await provisioner.provision(42)

    assert report.stored is False
    assert report.persisted == ()
    assert len(report.failed) == 4
    assert await count_rows(UserAddress) == 0
    assert await count_rows(ProviderEvent) == 0


async def test_second_run_keeps_first_addresses(provisioner, session_factory, count_rows):
    await provisioner.provision(42)
    before = await _addresses(session_factory, 42)

    report = await provisioner.provision(42)

    assert report.stored is True
    assert report.persisted == ()
    assert await _addresses(session_factory, 42) == before
    assert await count_rows(UserAddress) == 4


async def test_users_do_not_share_addresses(provisioner, session_factory):
    await provisioner.provision(1)
    await provisioner.provision(2)

    first = await _addresses(session_factory, 1)
    second = await _addresses(session_factory, 2)
    assert len(first) == len(second) == 4
    assert not set(first.values()) & set(second.values())


async def test_missing_token_skips_provider(session_factory, fake_creator, caplog):
    provisioner = AddressProvisioner(
        ProvisionerConfig(wallets=(WalletTarget("tbtc4", "w"),), access_token=None),
        fake_creator,
        session_factory,
    )

    with caplog.at_level(logging.ERROR):
        report = await provisioner.provision(42)

    assert report.persisted == () and report.stored is False
    assert fake_creator.calls == []
    assert any("access token not configured" in r.getMessage() for r in caplog.records)


async def test_storage_failure_is_logged_and_reported(tmp_path, fake_creator, caplog):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        provisioner = AddressProvisioner(
            ProvisionerConfig(
                wallets=(WalletTarget("tbtc4", "w-btc"), WalletTarget("tsol", "w-sol")),
                access_token="test-token",
            ),
            fake_creator,
            create_session_factory(engine),
        )

        with caplog.at_level(logging.ERROR):
            report = await provisioner.provision(42)
    finally:
        await engine.dispose()

    assert report.stored is False
    assert report.persisted == ()
    assert report.failed == ()
    assert len(fake_creator.calls) == 2
    assert any("Error storing addresses for user 42" in r.getMessage() for r in caplog.records)


async def test_provision_restores_caller_log_context(provisioner):
    log_filter = ContextFilter(env="dev", service="Deposit Ledger")
    set_request_context(request_id="rid-1", user_id=5)
    try:
        await provisioner.provision(42)
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "after", None, None)
        log_filter.filter(record)
    finally:
        clear_request_context()

    assert (record.rid, record.uid) == ("rid-1", "5")

async def test_unsupported_and_empty_wallets_are_skipped(session_factory, fake_creator):
    provisioner = AddressProvisioner(
        ProvisionerConfig(
            wallets=(
                WalletTarget("tltc", "wallet-ltc"),
                WalletTarget("tsol", ""),
                WalletTarget("tbtc4", "wallet-btc"),
            ),
            access_token="test-token",
        ),
        fake_creator,
        session_factory,
    )

    report = await provisioner.provision(42)

    assert fake_creator.calls == [("tbtc4", "wallet-btc")]
    assert report.persisted == ("TBTC4",)


async def test_unexpected_creator_error_is_contained(session_factory):
    class BrokenCreator:
        async def create_address(self, coin, wallet_id):
            if coin == "tsol":
                raise RuntimeError("connection reset")
            return f"{coin}-ok"

    provisioner = AddressProvisioner(
        ProvisionerConfig(
            wallets=(WalletTarget("tbtc4", "w1"), WalletTarget("tsol", "w2")),
            access_token="test-token",
        ),
        BrokenCreator(),
        session_factory,
    )

    report = await provisioner.provision(42)

    assert report.persisted == ("TBTC4",)
    assert report.failed == ("tsol",)


def test_config_from_settings_uses_configured_wallets():
    settings = Settings(
        BITGO_ACCESS_TOKEN="tok",
        BTC_WALLET_ID="wb",
        ADA_WALLET_ID="",
        SOL_WALLET_ID="ws",
        DOGE_WALLET_ID=None,
    )

    config = ProvisionerConfig.from_settings(settings)

    assert config.access_token == "tok"
    assert config.wallets == (WalletTarget("tbtc4", "wb"), WalletTarget("tsol", "ws"))
