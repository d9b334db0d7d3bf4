# -*- coding: utf-8 -*-
"""Alembic environment for Deposit Ledger (async).

Назначение:
    • Настроить Alembic для async SQLAlchemy (asyncpg/PostgreSQL).
    • Подтянуть Declarative Base вместе со всеми моделями леджера.
    • Запустить миграции в оффлайн- или онлайн-режиме.

Канон/инварианты:
    • Только DDL: балансы и депозиты здесь не изменяются.
    • DSN и схема берутся из config_core (DATABASE_URL, DB_SCHEMA_CORE).
    • compare_type включён, чтобы Numeric(36,18) не «расползался» с моделями.

Запреты:
    • Никаких create_all/drop_all здесь: DDL описана в файлах версий.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from backend.app.core.config_core import get_settings
from backend.app.core.database_core import Base
from backend.app.core.logging_core import get_logger
from backend.app.models import MODEL_REGISTRY

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = get_logger(__name__)
settings = get_settings()

db_url = settings.database_url_async()
config.set_main_option("sqlalchemy.url", db_url)

target_metadata = Base.metadata
logger.info("alembic: models loaded: %s", ",".join(sorted(MODEL_REGISTRY)))


def _include_name(name, type_, parent_names) -> bool:
    # Сравниваем только свою схему (или схему по умолчанию, если она не задана).
    if type_ == "schema":
        return name == settings.schema_core
    return True


def run_migrations_offline() -> None:
    """Запускает миграции без подключения к БД (выводит SQL)."""

    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_schemas=bool(settings.schema_core),
        include_name=_include_name,
        version_table_schema=settings.schema_core,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_schemas=bool(settings.schema_core),
        include_name=_include_name,
        version_table_schema=settings.schema_core,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Создаёт async engine и запускает миграции."""

    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        if settings.schema_core and connection.dialect.name == "postgresql":
            # version_table живёт в той же схеме: она должна существовать заранее
            await connection.exec_driver_sql(
                f'CREATE SCHEMA IF NOT EXISTS "{settings.schema_core}"'
            )
            await connection.commit()
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())


# ============================================================================
# Пояснения «для чайника»:
#   • Этот файл не создаёт таблицы сам: только настраивает Alembic.
#   • URL БД берётся из .env (DATABASE_URL) и приводится к async-драйверу.
#   • Таблица версий alembic_version лежит в схеме DB_SCHEMA_CORE.
# ============================================================================
