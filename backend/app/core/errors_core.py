# -*- coding: utf-8 -*-
# backend/app/core/errors_core.py
# =============================================================================
# Назначение кода:
#   • Единый слой ошибок/исключений Deposit Ledger.
#   • Канонические коды ошибок для клиентов/логов.
#   • Унифицированные JSON-ответы для FastAPI.
#
# Канон / инварианты:
#   • Сервисы леджера бросают ТОЛЬКО доменные исключения из этого модуля.
#   • Бизнес-условия (неизвестная валюта, дубликат, чужой адрес) сервисы
#     превращают в исход + запись в лог, а не в исключение наружу.
#   • Клиенту никогда не утекают технические детали (stack trace, DSN, токены).
#
# ИИ-защита:
#   • Любая неизвестная ошибка логируется как INTERNAL, но наружу выдаётся
#     безопасное сообщение "internal_error" без деталей.
#   • HTTPException пропускается, но дополняется стандартным JSON-форматом.
#
# Запреты:
#   • Не включать сюда бизнес-логику (конвертации, зачисления и т.п.).
#   • Не логировать здесь секреты/конфиденциальные данные (см. logging_core).
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, cast

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from backend.app.core.logging_core import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Базовая доменная ошибка леджера
# -----------------------------------------------------------------------------
@dataclass
class LedgerError(Exception):
    """
    Базовое доменное исключение леджера.

    Поля:
      • code: стабильный машинный код ошибки (snake_case).
      • message: короткое безопасное сообщение для клиента.
      • http_status: HTTP код по умолчанию.
      • details: безопасные детали (без секретов), опционально.
    """

    code: str
    message: str
    http_status: int = status.HTTP_400_BAD_REQUEST
    details: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Готовит JSON-ответ для клиента."""
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# -----------------------------------------------------------------------------
# Доменные ошибки
# -----------------------------------------------------------------------------
class InputRejectedError(LedgerError):
    """Событие/запрос структурно корректен, но не может быть принят."""

    def __init__(
        self,
        message: str = "Input rejected.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="input_rejected",
            message=message,
            http_status=status.HTTP_400_BAD_REQUEST,
            details=details or {},
        )


class UnknownCurrencyError(InputRejectedError):
    """Код монеты провайдера отсутствует в реестре валют."""

    def __init__(self, external_code: str) -> None:
        super().__init__(
            f"Unsupported coin: {external_code}",
            details={"coin": external_code},
        )
        self.external_code = external_code


class DuplicateEventError(LedgerError):
    """
    Событие с этим ключом идемпотентности уже обработано.

    Поднимает LedgerCRUD.add_deposit() на UNIQUE(blockchain_tx_hash); сервис
    приёма превращает его в исход DUPLICATE.
    """

    def __init__(
        self,
        message: str = "Event already processed.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="duplicate_event",
            message=message,
            http_status=status.HTTP_409_CONFLICT,
            details=details or {},
        )


class ConversionError(LedgerError):
    """Сырая сумма не приводится к положительному Decimal."""

    def __init__(
        self,
        message: str = "Invalid amount.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="conversion_error",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details or {},
        )


class PersistenceFailure(LedgerError):
    """Хранилище отказало; транзакция откатана."""

    def __init__(
        self,
        message: str = "Storage failure.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="persistence_failure",
            message=message,
            http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details or {},
        )


class ProviderFailure(LedgerError):
    """
    Ошибка кастодиального провайдера (BitGo) для конкретной монеты.

    body: тело ответа провайдера (если было), только для логов.
    """

    def __init__(
        self,
        message: str = "Provider request failed.",
        *,
        coin: str = "",
        body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = {"coin": coin}
        merged.update(details or {})
        super().__init__(
            code="provider_failure",
            message=message,
            http_status=status.HTTP_502_BAD_GATEWAY,
            details=merged,
        )
        self.coin = coin
        self.body = body


# -----------------------------------------------------------------------------
# Нормализация исключений → (status_code, payload)
# -----------------------------------------------------------------------------
def normalize_exception(
    exc: BaseException,
) -> Tuple[int, Dict[str, Any]]:
    """
    Приводит произвольное исключение к каноническому HTTP-ответу.

    Правила:
      • LedgerError      → свой http_status + to_payload().
      • HTTPException    → status_code + {"error": "http_error", "message", ...}.
      • Любая другая     → 500 + {"error": "internal_error"} (без деталей).
    """
    if isinstance(exc, LedgerError):
        return exc.http_status, exc.to_payload()

    if isinstance(exc, HTTPException):
        # detail может быть строкой или dict
        msg: str
        if isinstance(exc.detail, str):
            msg = exc.detail
            details: Dict[str, Any] = {}
        elif isinstance(exc.detail, dict):
            details = cast(Dict[str, Any], exc.detail)
            msg = details.get("message") or details.get("detail") or "HTTP error."
        else:
            msg = "HTTP error."
            details = {}

        payload: Dict[str, Any] = {
            "error": "http_error",
            "message": msg,
        }
        if details:
            payload["details"] = details
        return exc.status_code, payload

    logger.error("Unhandled exception", extra={"error_type": type(exc).__name__})
    return (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {
            "error": "internal_error",
            "message": "Internal server error.",
        },
    )


# -----------------------------------------------------------------------------
# FastAPI-хендлеры исключений
# -----------------------------------------------------------------------------
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Обработчик LedgerError: структурированный JSON с кодом ошибки."""
    status_code, payload = normalize_exception(exc)
    logger.warning(
        "LedgerError handled",
        extra={
            "path": request.url.path,
            "error": exc.code,
            "status": status_code,
        },
    )
    return JSONResponse(status_code=status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Обработчик "на всё остальное".

    Логируем stack trace и тип исключения, клиенту: только internal_error.
    """
    status_code, payload = normalize_exception(exc)
    logger.error(
        "Unhandled exception handled by generic handler",
        exc_info=exc,
        extra={
            "path": request.url.path,
            "status": status_code,
            "exc_type": type(exc).__name__,
        },
    )
    return JSONResponse(status_code=status_code, content=payload)


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Подключает обработчики исключений. Вызывать один раз при создании приложения.
    """
    app.add_exception_handler(LedgerError, ledger_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered for LedgerError/Exception")


# =============================================================================
# Пояснения «для чайника»:
#   • Сервис, который не может продолжить работу по бизнес-причине, либо
#     возвращает исход (IngestOutcome), либо бросает наследника LedgerError:
#     тогда клиент увидит стабильный error_code.
#   • ProviderFailure несёт код монеты и тело ответа BitGo: тело идёт только
#     в логи, клиенту его не отдаём.
# =============================================================================

__all__ = [
    "LedgerError",
    "InputRejectedError",
    "UnknownCurrencyError",
    "DuplicateEventError",
    "ConversionError",
    "PersistenceFailure",
    "ProviderFailure",
    "normalize_exception",
    "setup_exception_handlers",
]
