# -*- coding: utf-8 -*-
# backend/app/core/__init__.py
# =============================================================================
# Назначение кода:
# Единая точка входа ядра Deposit Ledger: загрузка настроек, первичная
# инициализация логирования и стартовая самодиагностика конфигурации.
#
# Канон/инварианты (важно):
# • Источником истины служит config_core.get_settings(): никаких локальных
#   дублей констант здесь не создаём.
# • Денежные операции здесь НЕ выполняются (только конфиг/проверки/экспорты).
#
# ИИ-защита/самовосстановление:
# • boot_core() всегда возвращает диагностический словарь: без падения
#   всего процесса.
# • core_health() проверяет «минимально достаточный» набор настроек и
#   возвращает отчёт (ok + список ошибок).
#
# Запреты:
# • Не определяем здесь бизнес-логики и не импортируем тяжёлые слои (CRUD/Services).
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from .config_core import get_settings  # единый источник настроек (Pydantic)
from .logging_core import get_logger   # унификация логирования по проекту

# Версия ядра (повышать при несовместимых изменениях ядра)
CORE_VERSION = "1.0.0"

logger = get_logger(__name__)

__all__ = [
    "CORE_VERSION",
    "get_settings",
    "boot_core",
    "core_health",
]


def core_health() -> Dict[str, Any]:
    """
    Быстрые sanity-checks по ключевым настройкам. Никаких падений: только отчёт.

    Проверяем:
        • DATABASE_URL: задан;
        • BITGO_ACCESS_TOKEN: задан (иначе адреса не выдаются);
        • хотя бы один кошелёк BitGo с wallet_id;
        • таймауты: положительные числа.

    Возвращает:
        dict: { ok: bool, errors: List[str], snapshot: Dict[str, str] }
    """
    settings = get_settings()
    errors: List[str] = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL must be set.")
    if not settings.BITGO_ACCESS_TOKEN:
        errors.append("BITGO_ACCESS_TOKEN is not set; address provisioning is disabled.")
    if not settings.wallet_targets():
        errors.append("No *_WALLET_ID configured; nothing to provision.")
    if settings.NETWORK_REQUEST_TIMEOUT_SEC <= 0:
        errors.append("NETWORK_REQUEST_TIMEOUT_SEC must be positive.")
    if settings.BACKGROUND_DRAIN_TIMEOUT_SEC <= 0:
        errors.append("BACKGROUND_DRAIN_TIMEOUT_SEC must be positive.")

    return {"ok": not errors, "errors": errors, "snapshot": settings.debug_dump()}


def boot_core() -> Dict[str, Any]:
    """
    Безопасная инициализация ядра: настройки, самодиагностика, лог и сводка.

    Возвращает dict: timestamp_utc, core_version, health.
    """
    ts = datetime.now(timezone.utc).isoformat()
    settings = get_settings()
    logger.info(
        "Ledger core boot: version=%s env=%s schema=%s",
        CORE_VERSION,
        settings.env_normalized,
        settings.schema_core or "-",
    )

    health = core_health()
    if not health["ok"]:
        logger.warning("Core health warnings: %s", health["errors"])

    return {
        "timestamp_utc": ts,
        "core_version": CORE_VERSION,
        "health": health,
    }
