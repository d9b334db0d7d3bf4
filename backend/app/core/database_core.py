# -*- coding: utf-8 -*-
# backend/app/core/database_core.py
# =============================================================================
# Назначение кода:
#   • Единая точка работы с БД Deposit Ledger (PostgreSQL + asyncpg + SQLAlchemy 2.0).
#   • Декларативная база ORM (Base) с общим MetaData и соглашением имён.
#   • Создание и конфигурация AsyncEngine и async_sessionmaker.
#   • Безопасная выдача сессий для FastAPI-роутов, сервисов и фоновых задач.
#   • Health-утилита db_ping() и аккуратное закрытие пула при остановке.
#
# Канон / инварианты:
#   • Только async-движок (create_async_engine), никаких sync-engine.
#   • DSN берём из Settings.database_url_async(): там единый источник истины.
#   • Пул соединений управляется настройками DB_POOL_SIZE / DB_MAX_OVERFLOW
#     (для SQLite параметры пула не передаются: у неё свой пул).
#   • Сессии expire_on_commit=False (во избежание лишних рефрешей).
#
# Запреты:
#   • Никакой бизнес-логики (депозиты, балансы, адреса) в этом модуле.
#   • Никаких Alembic-миграций/DDL здесь: только подключения и сессии.
# =============================================================================

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from sqlalchemy import MetaData, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config_core import get_settings
from backend.app.core.logging_core import get_logger

logger = get_logger(__name__)
settings = get_settings()

# -----------------------------------------------------------------------------
# Декларативная база ORM
# -----------------------------------------------------------------------------
NAMING_CONVENTION: Dict[str, str] = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Общая база всех ORM-моделей леджера (одно MetaData для Alembic)."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# -----------------------------------------------------------------------------
# Глобальные объекты: движок и фабрика сессий
# -----------------------------------------------------------------------------
_engine: Optional[AsyncEngine] = None
_SessionFactory: Optional[async_sessionmaker[AsyncSession]] = None
_engine_lock = asyncio.Lock()


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """
    SQLite: каждая транзакция начинается с BEGIN IMMEDIATE.

    Писатели выстраиваются в очередь на busy-timeout драйвера, вместо
    SQLITE_BUSY при повышении блокировки посреди транзакции.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(dsn: str, *, echo: bool = False) -> AsyncEngine:
    """
    Создаёт AsyncEngine для DSN.

    Особенности:
    • Включён pool_pre_ping для раннего обнаружения "умерших" соединений.
    • Параметры пула (DB_POOL_SIZE / DB_MAX_OVERFLOW): только не для SQLite.
    """
    backend_name = make_url(dsn).get_backend_name()
    kwargs: Dict[str, Any] = {"pool_pre_ping": True, "echo": echo}
    if backend_name == "sqlite":
        kwargs["connect_args"] = {"timeout": 30}
    else:
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

    engine = create_async_engine(dsn, **kwargs)
    if backend_name == "sqlite":
        _serialize_sqlite_writers(engine)
    return engine


def _create_engine() -> AsyncEngine:
    """
    Создаёт новый AsyncEngine на базе актуальных настроек.

    DSN приводится к async-формату через Settings.database_url_async(),
    echo включается только в DEBUG-режиме.
    """
    dsn = settings.database_url_async()
    logger.info(
        "Creating async DB engine",
        extra={"backend": make_url(dsn).get_backend_name()},
    )
    return build_engine(dsn, echo=settings.DEBUG)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Строит async_sessionmaker поверх переданного движка.

    Канон:
    • expire_on_commit=False: объекты остаются валидными после commit().
    • autoflush=False: явный контроль flush при необходимости.
    """
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


def get_engine() -> AsyncEngine:
    """
    Возвращает текущий AsyncEngine.

    Если движок ещё не был создан, создаёт его лениво: импорт модуля
    не требует живой БД (важно для Alembic и тестов).
    """
    global _engine, _SessionFactory

    if _engine is None:
        engine = _create_engine()
        _engine = engine
        _SessionFactory = create_session_factory(engine)
        logger.info("DB engine lazily initialized")
    assert _engine is not None  # для mypy
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Возвращает фабрику сессий (гарантирует, что движок создан)."""
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = create_session_factory(engine)
        logger.info("Session factory initialized")
    assert _SessionFactory is not None  # для mypy
    return _SessionFactory


async def dispose_engine() -> None:
    """
    Закрывает пул соединений при остановке приложения.

    Повторный get_engine() после dispose_engine() создаст движок заново.
    """
    global _engine, _SessionFactory

    async with _engine_lock:
        engine = _engine
        _engine = None
        _SessionFactory = None
        if engine is not None:
            await engine.dispose()
            logger.info("DB engine disposed")


# -----------------------------------------------------------------------------
# Сессии: зависимость FastAPI и контекст для фоновых задач
# -----------------------------------------------------------------------------
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Зависимость для FastAPI-роутов.

    Пример использования:
        SessionDep = Annotated[AsyncSession, Depends(get_db)]

    При ошибке логируем контекст и пробрасываем исключение наверх.
    """
    session_factory = get_session_factory()
    session = session_factory()
    try:
        yield session
        # commit управляется вызывающим кодом; здесь не коммитим
    except Exception as exc:  # noqa: BLE001
        logger.exception("DB session error", extra={"error": str(exc)})
        raise
    finally:
        await session.close()


@asynccontextmanager
async def lifespan_session(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncIterator[AsyncSession]:
    """
    Сессия вне HTTP-запроса (фоновые задачи, скрипты).

    Пример:
        async with lifespan_session() as db:
            ...
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        yield session


# -----------------------------------------------------------------------------
# Health-check / ping
# -----------------------------------------------------------------------------
async def db_ping() -> bool:
    """
    Простейший health-check БД.

    Возвращает:
    • True: если SELECT 1 успешно прошёл;
    • False: если БД не отвечает или DSN не задан.
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (OperationalError, DBAPIError) as exc:
        logger.error(
            "DB ping failed: DB is not reachable",
            extra={"error": str(exc)},
        )
        return False
    except Exception as exc:  # noqa: BLE001
        logger.exception("DB ping failed with unexpected error", extra={"error": str(exc)})
        return False


__all__ = [
    "AsyncSession",
    "AsyncEngine",
    "Base",
    "build_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "dispose_engine",
    "get_db",
    "lifespan_session",
    "db_ping",
]
