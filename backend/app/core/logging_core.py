# -*- coding: utf-8 -*-
# backend/app/core/logging_core.py
# =============================================================================
# Назначение кода:
#   Централизованная настройка логирования Deposit Ledger:
#   • формат и хэндлеры (stdout + опциональный файл с ротацией);
#   • контекст корреляции (request_id, idempotency_key, user_id);
#   • защита от утечек секретов (BitGo-токен, DSN);
#   • ASGI-middleware корреляции и журнала HTTP-запросов.
#
# Канон / инварианты:
#   • prod пишет JSON (python-json-logger), dev/local пишут строку с полями
#     rid/idk/uid.
#   • Сбой фильтра редактирования не должен терять запись лога.
#   • Денежные операции сопровождаем полями env, svc, rid, idk, uid
#     (idk для депозита = blockchain tx hash).
#
# Запреты:
#   • Никакого логирования приватных данных (токены, DSN с паролем).
#   • Форматеры и фильтры не ходят в сеть и в БД.
# =============================================================================

from __future__ import annotations

import contextvars
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, MutableMapping, Optional, Tuple

from pythonjsonlogger.json import JsonFormatter

from backend.app.core.config_core import get_settings

ASGIApp = Callable[
    [Mapping[str, Any], Callable[..., Awaitable[Any]], Callable[..., Awaitable[Any]]],
    Awaitable[Any],
]


# -----------------------------------------------------------------------------
# Контекст корреляции (contextvars): у каждой asyncio-задачи своя копия
# -----------------------------------------------------------------------------
_rid_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "rid",
    default=None,
)  # request_id
_idk_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "idk",
    default=None,
)  # idempotency_key (tx hash депозита)
_uid_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "uid",
    default=None,
)  # user_id (строкой, чтобы не типизировать в логах)


def set_request_context(
    *,
    request_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    user_id: Optional[int | str] = None,
) -> None:
    """
    Присвоить контекст корреляции текущему асинхронному потоку.

    Фоновые задачи (asyncio.Task) получают копию контекста в момент создания,
    поэтому значения, выставленные внутри задачи, не «протекают» в запрос.
    """
    if request_id is not None:
        _rid_var.set(str(request_id))
    if idempotency_key is not None:
        _idk_var.set(str(idempotency_key))
    if user_id is not None:
        _uid_var.set(str(user_id))


def clear_request_context() -> None:
    """Очистить контекст корреляции (после завершения запроса/задачи)."""
    _rid_var.set(None)
    _idk_var.set(None)
    _uid_var.set(None)


@contextmanager
def request_context_scope() -> Iterator[None]:
    """
    Снимок контекста корреляции на входе и восстановление на выходе.

    Сервис, вызванный напрямую (не через BackgroundRunner), выставляет idk/uid
    только на время своей работы и не оставляет их в логах вызывающего.
    """
    snapshot = (_rid_var.get(), _idk_var.get(), _uid_var.get())
    try:
        yield
    finally:
        _rid_var.set(snapshot[0])
        _idk_var.set(snapshot[1])
        _uid_var.set(snapshot[2])


# -----------------------------------------------------------------------------
# Фильтры логирования
# -----------------------------------------------------------------------------
class ContextFilter(logging.Filter):
    """
    Впрыскивает в запись логера структурированные поля из contextvars и настроек.

    Поля:
      • env: нормализованная среда (local/dev/prod);
      • svc: имя сервиса (PROJECT_NAME);
      • rid: request_id (корреляция запросов);
      • idk: idempotency_key (tx hash депозита);
      • uid: user_id (если установлен).
    """

    def __init__(self, env: str, service: str) -> None:
        super().__init__()
        self._env = env
        self._svc = service

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "env"):
            record.env = self._env
        if not hasattr(record, "svc"):
            record.svc = self._svc
        if not hasattr(record, "rid"):
            record.rid = _rid_var.get() or "-"
        if not hasattr(record, "idk"):
            record.idk = _idk_var.get() or "-"
        if not hasattr(record, "uid"):
            record.uid = _uid_var.get() or "-"
        return True


class RedactingFilter(logging.Filter):
    """
    Маскирует значения секретов из настроек в сообщении и аргументах записи.

    Маскируются именно значения (а не имена ключей): токен BitGo, попавший
    в текст ошибки провайдера, тоже будет скрыт.
    """

    MASK = "****"
    SECRET_KEYS: Tuple[str, ...] = (
        "BITGO_ACCESS_TOKEN",
        "DATABASE_URL",
    )

    def __init__(self, settings_obj: object) -> None:
        super().__init__()
        self._secrets: list[str] = []
        for key in self.SECRET_KEYS:
            val = getattr(settings_obj, key, None)
            if val and isinstance(val, str):
                self._secrets.append(val)

    def _redact_text(self, text: str) -> str:
        if not text:
            return text
        redacted = text
        for secret in self._secrets:
            if secret and secret in redacted:
                redacted = redacted.replace(secret, self.MASK)
        return redacted

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            if isinstance(record.msg, str):
                record.msg = self._redact_text(record.msg)
            if isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_text(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        except Exception:  # noqa: BLE001
            # Фильтр не должен ломать логирование.
            pass
        return True


# -----------------------------------------------------------------------------
# Форматеры
# -----------------------------------------------------------------------------
class DevFormatter(logging.Formatter):
    """
    Человекочитаемый формат для local/dev-окружений.

    Пример строки:
    2026-10-18 12:00:00 | INFO     | Deposit Ledger | backend.app... | rid=- idk=0xabc uid=7 | msg
    """

    def __init__(self) -> None:
        super().__init__(
            fmt=(
                "%(asctime)s | %(levelname)-8s | %(svc)s | %(name)s | "
                "rid=%(rid)s idk=%(idk)s uid=%(uid)s | %(message)s"
            ),
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class LedgerJsonFormatter(JsonFormatter):
    """JSON-формат для prod: фиксированный набор ключей + extra-поля записи."""

    _BASE_KEYS = {
        "asctime": "time",
        "levelname": "level",
        "svc": "service",
        "name": "logger",
        "env": "env",
        "rid": "rid",
        "idk": "idk",
        "uid": "uid",
        "message": "msg",
    }

    def process_log_record(self, log_record: Dict[str, Any]) -> Dict[str, Any]:
        base = super().process_log_record(log_record)
        out: Dict[str, Any] = {
            target: base.get(source) for source, target in self._BASE_KEYS.items()
        }
        for key, value in base.items():
            if key not in self._BASE_KEYS:
                out[key] = value
        return out


def _make_json_formatter() -> logging.Formatter:
    fmt = (
        "%(asctime)s %(levelname)s %(svc)s %(name)s %(env)s "
        "%(rid)s %(idk)s %(uid)s %(message)s"
    )
    return LedgerJsonFormatter(fmt=fmt)


# -----------------------------------------------------------------------------
# Инициализация логирования
# -----------------------------------------------------------------------------
def setup_logging() -> None:
    """
    Полностью настраивает логирование:

      • root-логгер, формат, уровень (LOG_LEVEL, DEBUG форсирует DEBUG);
      • консоль (stdout) и файл с ротацией (если задан LOG_FILE);
      • фильтры контекста и редактирования;
      • uvicorn/fastapi-логгеры → в root (единый формат);
      • SQLAlchemy-логгер в режиме DEBUG.
    """
    settings = get_settings()
    env = settings.env_normalized
    debug = bool(settings.DEBUG)
    service = settings.PROJECT_NAME

    root = logging.getLogger()
    root.handlers.clear()
    level = logging.DEBUG if debug else logging.getLevelName(settings.LOG_LEVEL)
    root.setLevel(level)

    ctx_filter = ContextFilter(env=env, service=service)
    redact_filter = RedactingFilter(settings_obj=settings)

    # --- Консольный хэндлер ---
    console_handler = logging.StreamHandler(sys.stdout)
    if env in ("local", "dev"):
        formatter: logging.Formatter = DevFormatter()
    else:
        formatter = _make_json_formatter()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ctx_filter)
    console_handler.addFilter(redact_filter)
    root.addHandler(console_handler)

    # --- Файл логов с ротацией ---
    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=settings.LOG_FILE_MAX_BYTES,
            backupCount=settings.LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(DevFormatter())
        file_handler.addFilter(ctx_filter)
        file_handler.addFilter(redact_filter)
        root.addHandler(file_handler)

    # --- Перехват uvicorn/fastapi ---
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(level)
        logger.propagate = True

    if debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "details": {
                "env": env,
                "debug": debug,
                "level": logging.getLevelName(level),
                "file": settings.LOG_FILE or "-",
            },
        },
    )


def get_logger(name: Optional[str] = None, **extra: Any) -> logging.Logger:
    """
    Получить логгер по имени и (опционально) привязать дополнительные поля
    через LoggerAdapter.

    Пример:
        log = get_logger(__name__, component="ingestor")
    """
    base = logging.getLogger(name)
    if not extra:
        return base
    return logging.LoggerAdapter(base, extra)  # type: ignore[return-value]


# -----------------------------------------------------------------------------
# ASGI-middleware
# -----------------------------------------------------------------------------
def _headers_of(scope: Mapping[str, Any]) -> Dict[str, str]:
    raw_headers: MutableMapping[bytes, bytes] = dict(scope.get("headers") or [])
    return {key.decode().lower(): value.decode() for key, value in raw_headers.items()}


class CorrelationIdMiddleware:
    """
    Впрыскивает X-Request-ID и Idempotency-Key из HTTP-заголовков в contextvars,
    чтобы все логи запроса автоматически содержали rid/idk.

    Если X-Request-ID отсутствует: генерируется UUID4 (hex) и возвращается
    клиенту в ответе.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[Any]],
        send: Callable[..., Awaitable[Any]],
    ) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        headers = _headers_of(scope)
        rid = headers.get("x-request-id") or uuid.uuid4().hex
        idk = headers.get("idempotency-key")

        set_request_context(request_id=rid, idempotency_key=idk)

        async def send_wrapper(message: Mapping[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers_list: list[Tuple[bytes, bytes]] = list(message.get("headers") or [])
                headers_list.append((b"x-request-id", rid.encode("utf-8")))
                new_message: Dict[str, Any] = dict(message)
                new_message["headers"] = headers_list
                await send(new_message)
                return
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            clear_request_context()


class RequestLogMiddleware:
    """
    Журнал HTTP: строка на входящий запрос и строка на ответ.

    Уровень ответа зависит от статуса: <400: info, 4xx: warning, 5xx: error.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        self._log = logging.getLogger("backend.app.http")

    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[Any]],
        send: Callable[..., Awaitable[Any]],
    ) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "-")
        path = scope.get("path", "-")
        client = scope.get("client") or ("-", 0)
        started = time.perf_counter()
        status_holder: Dict[str, int] = {"status": 500}

        self._log.debug("Request: %s %s from IP: %s", method, path, client[0])

        async def send_wrapper(message: Mapping[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                status_holder["status"] = int(message.get("status", 500))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            code = status_holder["status"]
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            if code >= 500:
                level = logging.ERROR
            elif code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO
            self._log.log(
                level,
                "Response: %s for %s %s from IP: %s (%d ms)",
                code,
                method,
                path,
                client[0],
                elapsed_ms,
            )


# -----------------------------------------------------------------------------
# Автоконфигурация при импорте
# -----------------------------------------------------------------------------
setup_logging()

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_context",
    "clear_request_context",
    "request_context_scope",
    "CorrelationIdMiddleware",
    "RequestLogMiddleware",
]
