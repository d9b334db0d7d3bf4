# -*- coding: utf-8 -*-
# backend/app/services/__init__.py
# =============================================================================
# Deposit Ledger: сервисный слой (единая точка входа)
# -----------------------------------------------------------------------------
# Назначение файла:
#   • Дать стабильный вход для сервисов леджера: реестр валют, приём
#     депозитов из вебхуков и выдача адресов приёма.
#
# Важные принципы:
#   • Никакой бизнес-логики здесь нет: только импорты.
#   • Никаких HTTP-запросов и обращений к БД на уровне импорта.
# =============================================================================

from __future__ import annotations

from .currency_registry import (  # noqa: F401
    CurrencyDescriptor,
    descriptor_for_symbol,
    find_currency,
    list_currencies,
    map_provider_state,
    resolve_currency,
    to_decimal,
)
from .deposits_service import (  # noqa: F401
    DepositEvent,
    DepositIngestor,
    IngestOutcome,
    IngestResult,
)
from .address_service import (  # noqa: F401
    AddressCreator,
    AddressProvisioner,
    ProvisionerConfig,
    ProvisionReport,
    WalletTarget,
)

__all__ = [
    # --- currency_registry ---
    "CurrencyDescriptor",
    "descriptor_for_symbol",
    "find_currency",
    "list_currencies",
    "map_provider_state",
    "resolve_currency",
    "to_decimal",
    # --- deposits_service ---
    "DepositEvent",
    "DepositIngestor",
    "IngestOutcome",
    "IngestResult",
    # --- address_service ---
    "AddressCreator",
    "AddressProvisioner",
    "ProvisionerConfig",
    "ProvisionReport",
    "WalletTarget",
]
