# -*- coding: utf-8 -*-
# backend/app/models/__init__.py
# =============================================================================
# Назначение кода:
# Единая точка входа слоя моделей Deposit Ledger. Централизует:
#  • загрузку ORM-базиса (Base, схема БД) и всех моделей (для Alembic/create_all),
#  • реестр MODEL_REGISTRY для доступа к классам моделей,
#  • лёгкую диагностику полноты набора таблиц (models_health).
#
# Канон/инварианты (важно):
#  • Модели описывают структуру данных, НЕ содержат бизнес-логики и денег.
#  • Зачисления на баланс выполняются ТОЛЬКО в services/deposits_service.py.
#
# Запреты:
#  • Не размещать в __init__ бизнес-операции, миграции, DDL/DML и «create_all()».
# =============================================================================

from __future__ import annotations

import inspect
from typing import Dict, List, Optional, Tuple, Type

from ..core.database_core import Base  # единый Declarative Base проекта
from ..core.logging_core import get_logger
from . import ledger_models, provider_models
from .ledger_models import Deposit, DepositStatus, UserAddress, UserBalance
from .provider_models import CORE_SCHEMA, ProviderEvent, ProviderEventType

logger = get_logger(__name__)


def _collect_model_classes(module) -> Dict[str, Type[Base]]:
    """{ClassName: Class} для всех подклассов Base с объявленным __tablename__."""
    registry: Dict[str, Type[Base]] = {}
    for name, obj in vars(module).items():
        if inspect.isclass(obj) and issubclass(obj, Base) and hasattr(obj, "__tablename__"):
            registry[name] = obj
    return registry


MODEL_REGISTRY: Dict[str, Type[Base]] = {}
for _module in (provider_models, ledger_models):
    MODEL_REGISTRY.update(_collect_model_classes(_module))


def get_model(name: str) -> Optional[Type[Base]]:
    """Класс модели по имени (как объявлен в Python): get_model("Deposit")."""
    return MODEL_REGISTRY.get(name)


def list_models() -> List[Tuple[str, str]]:
    """Пары (ClassName, __tablename__) всех моделей, отсортированные по имени."""
    return [
        (cls_name, cls.__tablename__)
        for cls_name, cls in sorted(MODEL_REGISTRY.items(), key=lambda kv: kv[0].lower())
    ]


def models_health() -> Dict[str, object]:
    """
    Проверяет, что в метаданных есть все таблицы леджера.

    Возвращает {"ok", "missing_tables", "present", "schema"}.
    """
    required_tables = ["user_addresses", "deposits", "user_balances", "provider_events"]
    present = list_models()
    present_tables = {tbl for _, tbl in present}
    missing = [tbl for tbl in required_tables if tbl not in present_tables]
    if missing:
        logger.warning("models_health: missing tables %s", missing)
    return {
        "ok": not missing,
        "missing_tables": missing,
        "present": present,
        "schema": CORE_SCHEMA or "-",
    }


__all__ = [
    "Base",
    "CORE_SCHEMA",
    "MODEL_REGISTRY",
    "get_model",
    "list_models",
    "models_health",
    "Deposit",
    "DepositStatus",
    "UserAddress",
    "UserBalance",
    "ProviderEvent",
    "ProviderEventType",
]
