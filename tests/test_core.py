import logging
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from backend.app.core.config_core import Settings
from backend.app.core.errors_core import (
    ConversionError,
    DuplicateEventError,
    PersistenceFailure,
    ProviderFailure,
    UnknownCurrencyError,
    normalize_exception,
)
from backend.app.core.logging_core import (
    ContextFilter,
    RedactingFilter,
    clear_request_context,
    set_request_context,
)
from backend.app.core.utils_core import format_amount


def _record(msg, *args):
    return logging.LogRecord("t", logging.INFO, __file__, 1, msg, args, None)


def test_redacting_filter_masks_secret_values():
    f = RedactingFilter(SimpleNamespace(BITGO_ACCESS_TOKEN="v2xSECRET", DATABASE_URL=None))
    record = _record("auth failed for %s", "Bearer v2xSECRET")

    f.filter(record)

    assert record.getMessage() == "auth failed for Bearer ****"


def test_context_filter_injects_correlation_fields():
    f = ContextFilter(env="dev", service="Deposit Ledger")
    set_request_context(request_id="rid-1", idempotency_key="tx-1", user_id=7)
    try:
        record = _record("hello")
        f.filter(record)
    finally:
        clear_request_context()

    assert (record.env, record.svc, record.rid, record.idk, record.uid) == (
        "dev",
        "Deposit Ledger",
        "rid-1",
        "tx-1",
        "7",
    )
    record = _record("after")
    f.filter(record)
    assert record.rid == "-"


@pytest.mark.parametrize(
    "exc,status,code",
    [
        (UnknownCurrencyError("tltc"), 400, "input_rejected"),
        (ConversionError(), 422, "conversion_error"),
        (DuplicateEventError(), 409, "duplicate_event"),
        (PersistenceFailure(), 503, "persistence_failure"),
        (ProviderFailure(coin="tsol", body="secret body"), 502, "provider_failure"),
        (RuntimeError("x"), 500, "internal_error"),
    ],
)
def test_normalize_exception(exc, status, code):
    got_status, payload = normalize_exception(exc)

    assert got_status == status
    assert payload["error"] == code
    assert "secret body" not in str(payload)


def test_normalize_http_exception():
    status, payload = normalize_exception(HTTPException(status_code=404, detail="Not here"))

    assert status == 404
    assert payload == {"error": "http_error", "message": "Not here"}


@pytest.mark.parametrize(
    "url,expected",
    [
        ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
    ],
)
def test_database_url_async(url, expected):
    assert Settings(DATABASE_URL=url).database_url_async() == expected


def test_settings_normalisation():
    s = Settings(ENV="Production", DB_SCHEMA_CORE="  ", LOG_LEVEL="loud", BITGO_ACCESS_TOKEN="  ")

    assert s.env_normalized == "prod"
    assert s.is_prod is True
    assert s.schema_core is None
    assert s.LOG_LEVEL == "INFO"
    assert s.BITGO_ACCESS_TOKEN is None
    assert "bitgoTokenSet" in s.debug_dump()


@pytest.mark.parametrize(
    "value,expected",
    [("1.500000000000000000", "1.5"), ("0", "0"), ("100", "100"), ("0.00000001", "0.00000001")],
)
def test_format_amount(value, expected):
    assert format_amount(Decimal(value)) == expected
