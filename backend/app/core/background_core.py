# -*- coding: utf-8 -*-
# backend/app/core/background_core.py
# =============================================================================
# Назначение кода:
#   Исполнитель «выстрелил-и-забыл» задач Deposit Ledger: приём вебхука
#   отвечает сразу, а обработка депозита/выдача адресов идёт в фоне.
#
# Канон/инварианты:
#   • На каждую единицу работы держим сильную ссылку на asyncio.Task, пока она
#     не завершится (иначе сборщик мусора может прервать задачу).
#   • Канал ошибок: done-callback: исключение логируется со стеком и
#     отбрасывается, отмена логируется как warning.
#   • Единица работы отрабатывает до конца: отдельной отмены нет, только
#     общий drain() при остановке приложения.
#
# Запреты:
#   • Никакой бизнес-логики здесь: только жизненный цикл задач.
#   • Исключения задач не пробрасываются в HTTP-ответ.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional, Set

from backend.app.core.logging_core import get_logger

logger = get_logger(__name__)


class BackgroundRunner:
    """
    Держит набор фоновых задач и их канал ошибок.

    Пример:
        runner.submit(ingestor.ingest(event), name=f"deposit:{event.tx_hash}")
        ...
        await runner.drain(timeout=30)
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """Сколько единиц работы ещё в полёте."""
        return len(self._tasks)

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: Optional[str] = None,
    ) -> asyncio.Task[Any]:
        """Запускает корутину отдельной задачей и сразу возвращает управление."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Background unit submitted: %s", task.get_name())
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background unit cancelled: %s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background unit failed: %s",
                task.get_name(),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Ждёт завершения всех задач в полёте.

        По истечении timeout оставшиеся задачи отменяются (остановка процесса).
        """
        if not self._tasks:
            return
        in_flight = set(self._tasks)
        logger.info("Draining %d background unit(s)", len(in_flight))
        _, still_running = await asyncio.wait(in_flight, timeout=timeout)
        if still_running:
            logger.warning(
                "Background drain timed out; cancelling %d unit(s)",
                len(still_running),
            )
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)


__all__ = ["BackgroundRunner"]
