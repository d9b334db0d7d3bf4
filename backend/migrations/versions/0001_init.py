# -*- coding: utf-8 -*-
"""Initial migration for Deposit Ledger.

Назначение:
    • Создать схему DB_SCHEMA_CORE (если задана) и четыре таблицы леджера:
      provider_events, user_addresses, deposits, user_balances.

Канон/инварианты:
    • deposits.blockchain_tx_hash: UNIQUE: единственный ключ идемпотентности
      приёма депозитов.
    • user_addresses (user_id, currency) и user_balances (user_id, currency):
      UNIQUE: на них опираются ON CONFLICT DO NOTHING / DO UPDATE.
    • Суммы: тип Amount (NUMERIC(36,18), в SQLite строка), баланс не может уйти в минус (CHECK).
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from backend.app.core.config_core import get_settings
from backend.app.core.logging_core import get_logger
from backend.app.models.ledger_models import Amount

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels = None
depends_on = None

logger = get_logger(__name__)
settings = get_settings()
SCHEMA = settings.schema_core

AMOUNT = Amount()
ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
PAYLOAD = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _fq(table: str) -> str:
    return f"{SCHEMA}.{table}" if SCHEMA else table


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def upgrade() -> None:
    """Создать схему и таблицы леджера."""

    if SCHEMA and op.get_bind().dialect.name == "postgresql":
        logger.info("Creating schema if missing", extra={"schema": SCHEMA})
        op.execute(sa.text(f'CREATE SCHEMA IF NOT EXISTS "{SCHEMA}"'))

    op.create_table(
        "provider_events",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("payload", PAYLOAD, nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_provider_events"),
        sa.CheckConstraint(
            "event_type IN ('crypto_deposit','address_generation')",
            name="ck_provider_events_event_type_enum",
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_provider_events_event_type", "provider_events", ["event_type"], schema=SCHEMA
    )

    op.create_table(
        "user_addresses",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(16), nullable=False),
        sa.Column("address", sa.String(256), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_user_addresses"),
        sa.UniqueConstraint("user_id", "currency", name="uq_user_addresses_user_id_currency"),
        schema=SCHEMA,
    )
    op.create_index("ix_user_addresses_user_id", "user_addresses", ["user_id"], schema=SCHEMA)
    op.create_index("ix_user_addresses_address", "user_addresses", ["address"], schema=SCHEMA)

    op.create_table(
        "deposits",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "provider_event_id",
            ID,
            sa.ForeignKey(
                f"{_fq('provider_events')}.id",
                name="fk_deposits_provider_event_id_provider_events",
            ),
            nullable=True,
        ),
        sa.Column("currency", sa.String(16), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("blockchain_tx_hash", sa.String(256), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_deposits"),
        sa.UniqueConstraint("blockchain_tx_hash", name="uq_deposits_blockchain_tx_hash"),
        sa.CheckConstraint("amount > 0", name="ck_deposits_amount_positive"),
        sa.CheckConstraint(
            "status IN ('pending','completed','failed')", name="ck_deposits_status_enum"
        ),
        schema=SCHEMA,
    )
    op.create_index("ix_deposits_user_id", "deposits", ["user_id"], schema=SCHEMA)
    op.create_index("ix_deposits_status", "deposits", ["status"], schema=SCHEMA)

    op.create_table(
        "user_balances",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(16), nullable=False),
        sa.Column("balance", AMOUNT, nullable=False, server_default="0"),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id", name="pk_user_balances"),
        sa.UniqueConstraint("user_id", "currency", name="uq_user_balances_user_id_currency"),
        sa.CheckConstraint("balance >= 0", name="ck_user_balances_balance_nonneg"),
        schema=SCHEMA,
    )
    op.create_index("ix_user_balances_user_id", "user_balances", ["user_id"], schema=SCHEMA)


def downgrade() -> None:
    """Удалить таблицы леджера (схему не трогаем: в ней alembic_version)."""

    op.drop_index("ix_user_balances_user_id", table_name="user_balances", schema=SCHEMA)
    op.drop_table("user_balances", schema=SCHEMA)
    op.drop_index("ix_deposits_status", table_name="deposits", schema=SCHEMA)
    op.drop_index("ix_deposits_user_id", table_name="deposits", schema=SCHEMA)
    op.drop_table("deposits", schema=SCHEMA)
    op.drop_index("ix_user_addresses_address", table_name="user_addresses", schema=SCHEMA)
    op.drop_index("ix_user_addresses_user_id", table_name="user_addresses", schema=SCHEMA)
    op.drop_table("user_addresses", schema=SCHEMA)
    op.drop_index("ix_provider_events_event_type", table_name="provider_events", schema=SCHEMA)
    op.drop_table("provider_events", schema=SCHEMA)


# ============================================================================
# Пояснения «для чайника»:
#   • DDL описан явно, чтобы миграция не зависела от будущих правок моделей.
#   • Имена ограничений совпадают с naming convention из database_core.Base.
#   • Повторный прогон не нужен: Alembic помнит применённую ревизию.
# ============================================================================
