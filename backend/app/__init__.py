# ==============================================================================
# Deposit Ledger: FastAPI application factory
# ------------------------------------------------------------------------------
# Назначение: создаёт и конфигурирует FastAPI-приложение леджера депозитов,
# подключает middleware (корреляция, журнал запросов), обработчики ошибок,
# роуты и фоновый исполнитель.
#
# Канон/инварианты:
#   • Один BackgroundRunner на приложение (app.state.background_runner);
#     при остановке: drain() с таймаутом BACKGROUND_DRAIN_TIMEOUT_SEC и
#     закрытие пула БД.
#   • create_app() можно вызывать несколько раз (тесты): состояние не
#     разделяется между экземплярами, кроме пула БД.
#
# Запреты:
#   • Фабрика не пишет в БД и не двигает деньги: только конфигурирует API.
# ==============================================================================
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Union

from fastapi import FastAPI

from .core import boot_core
from .core.background_core import BackgroundRunner
from .core.config_core import get_settings
from .core.database_core import db_ping, dispose_engine
from .core.errors_core import setup_exception_handlers
from .core.logging_core import CorrelationIdMiddleware, RequestLogMiddleware, get_logger
from .routes import register

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    boot_core()
    logger.info("Deposit Ledger started", extra={"details": settings.debug_dump()})
    try:
        yield
    finally:
        runner: BackgroundRunner = app.state.background_runner
        await runner.drain(timeout=settings.BACKGROUND_DRAIN_TIMEOUT_SEC)
        await dispose_engine()
        logger.info("Deposit Ledger stopped")


def create_app() -> FastAPI:
    """Создать FastAPI-приложение с middleware, обработчиками ошибок и роутами."""

    settings = get_settings()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.APP_VERSION,
        lifespan=_lifespan,
    )
    app.state.background_runner = BackgroundRunner()

    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    setup_exception_handlers(app)
    register(app, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["health"])
    async def health() -> Dict[str, Union[str, bool]]:
        """Проверка живости сервиса и доступности БД."""

        return {"status": "ok", "db": await db_ping()}

    logger.info("FastAPI app initialised")
    return app


# ==============================================================================
# Пояснения «для чайника»:
#   • Вебхук BitGo отвечает сразу, а депозит обрабатывается в фоне: при
#     остановке сервиса мы дожидаемся этих задач (drain), чтобы не потерять
#     начатые транзакции.
#   • /health показывает db=false, если БД недоступна, но сам отвечает 200.
# ==============================================================================
