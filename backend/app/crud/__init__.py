"""Deposit Ledger CRUD facade.

======================================================================
Назначение модуля:
    • Экспортировать CRUD-слой леджера: адреса приёма, депозиты, балансы
      и аудит событий провайдера.

Канон/инварианты:
    • CRUD не решает, зачислять ли депозит: это делает DepositIngestor.
    • Транзакцией управляет вызывающий код (session.begin()), CRUD не
      коммитит.

Запреты:
    • Не добавлять здесь бизнес-логику.
======================================================================
"""

from backend.app.crud.ledger_crud import LedgerCRUD

__all__ = ["LedgerCRUD"]
