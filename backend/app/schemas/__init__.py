# -*- coding: utf-8 -*-
# backend/app/schemas/__init__.py
# =============================================================================
# Назначение кода:
# «Фасад» для Pydantic-схем Deposit Ledger. Даёт единый импорт:
#     from backend.app.schemas import TransferWebhook, BalanceList, ...
#
# Канон / инварианты:
# • Здесь НЕТ бизнес-логики: только агрегация схем.
# • Имена экспортируются из подмодулей строго по их __all__.
# • При конфликте имён между модулями: ImportError на старте, а не «тихое»
#   переопределение типа.
# =============================================================================

from __future__ import annotations

from importlib import import_module
from typing import Dict, List, Tuple

SCHEMAS_VERSION: str = "v1.0"

_SCHEMA_MODULES_ORDERED: List[str] = [
    "backend.app.schemas.webhook_schemas",
    "backend.app.schemas.wallet_schemas",
]

# name -> (module_name, object_ref)
_export_registry: Dict[str, Tuple[str, object]] = {}

for _mod_path in _SCHEMA_MODULES_ORDERED:
    _mod = import_module(_mod_path)
    for _name in _mod.__all__:
        if _name in _export_registry:
            raise ImportError(
                f"schema name conflict: {_name} in {_mod_path} and {_export_registry[_name][0]}"
            )
        _export_registry[_name] = (_mod_path, getattr(_mod, _name))
        globals()[_name] = getattr(_mod, _name)

__all__ = sorted(_export_registry)


def get_public_exports() -> Dict[str, object]:
    """Сводка экспортов фасада по модулям (для диагностики и тестов)."""
    by_module: Dict[str, List[str]] = {}
    for name, (mod, _obj) in _export_registry.items():
        by_module.setdefault(mod, []).append(name)
    return {
        "version": SCHEMAS_VERSION,
        "symbols": len(__all__),
        "by_module": {k: sorted(v) for k, v in sorted(by_module.items())},
    }
