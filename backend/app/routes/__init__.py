# -*- coding: utf-8 -*-
# backend/app/routes/__init__.py
# =============================================================================
# Назначение кода:
#   Единая точка подключения HTTP-роутов Deposit Ledger. Модуль агрегирует
#   подмодули роутов и предоставляет:
#     • общий APIRouter (api_router), в который «вмонтированы» все роуты;
#     • функцию register(app, prefix="") для подключения в FastAPI;
#     • список подключённых модулей для диагностики.
#
# Канон/инварианты:
#   • Этот модуль НЕ выполняет бизнес-логику: только проводка маршрутов.
#   • Каждый модуль роутов экспортирует `router: APIRouter` со своим prefix
#     ("/webhooks", "/wallets"); общий префикс API задаётся в register().
#   • Отсутствие модуля роутов: ошибка старта, а не «мягкий» пропуск:
#     без вебхука леджер не принимает депозиты.
# =============================================================================

from __future__ import annotations

from importlib import import_module
from typing import List, Tuple

from fastapi import APIRouter, FastAPI

from backend.app.core.logging_core import get_logger

logger = get_logger(__name__)

ROUTERS_EXPECTED: Tuple[str, ...] = (
    "webhook_routes",
    "wallet_routes",
)

_ATTACHED: List[str] = []


def build_api_router() -> APIRouter:
    """Собирает агрегированный APIRouter из модулей ROUTERS_EXPECTED."""
    api_router = APIRouter()
    for module_basename in ROUTERS_EXPECTED:
        mod = import_module(f"backend.app.routes.{module_basename}")
        router = getattr(mod, "router", None)
        if not isinstance(router, APIRouter):
            raise RuntimeError(f"routes: module {module_basename} has no router: APIRouter")
        api_router.include_router(router)
        if module_basename not in _ATTACHED:
            _ATTACHED.append(module_basename)
    return api_router


def register(app: FastAPI, prefix: str = "") -> None:
    """
    Регистрирует агрегированный роутер в приложении FastAPI.

    Args:
        app:    экземпляр FastAPI.
        prefix: базовый префикс для всех маршрутов (обычно "/api").
    """
    app.include_router(build_api_router(), prefix=prefix)
    logger.info(
        "routes: registered (prefix=%r): %s",
        prefix,
        ",".join(_ATTACHED) if _ATTACHED else "-",
    )


def list_registered_routes() -> List[str]:
    """Короткие имена подключённых модулей роутов (для health-диагностики)."""
    return list(_ATTACHED)


__all__ = [
    "register",
    "build_api_router",
    "list_registered_routes",
    "ROUTERS_EXPECTED",
]
