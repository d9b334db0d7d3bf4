# -*- coding: utf-8 -*-
# backend/app/routes/webhook_routes.py
# =============================================================================
# Назначение кода:
#   • Приём вебхуков BitGo о переводах: POST /webhooks/bitgo.
#   • Структурная проверка тела и немедленный ответ; обработка депозита
#     уходит в фоновый исполнитель.
#
# Канон/инварианты:
#   • 400 {"success": false, "error": "Invalid webhook type"}: тело не объект
#     или type != "transfer".
#   • 400 {"success": false, "error": "Incomplete webhook data"}: нет или пусто
#     одно из hash/coin/state/receiver/valueString (или это не строка).
#   • Иначе 200 {"success": true, "message": "Webhook received"} сразу, до
#     обработки; ответ не отражает бизнес-исход (дубликат, чужой адрес, ...).
#
# Запреты:
#   • Роут не ходит в БД и не ждёт ingest().
# =============================================================================

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from backend.app.core.background_core import BackgroundRunner
from backend.app.core.logging_core import get_logger
from backend.app.deps import get_background_runner, get_deposit_ingestor
from backend.app.schemas.webhook_schemas import TransferWebhook, WebhookAck, WebhookRejection
from backend.app.services.deposits_service import DepositEvent, DepositIngestor

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

INVALID_TYPE = "Invalid webhook type"
INCOMPLETE_DATA = "Incomplete webhook data"


def _reject(error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=WebhookRejection(error=error).model_dump(),
    )


@router.post(
    "/bitgo",
    response_model=WebhookAck,
    responses={400: {"model": WebhookRejection}},
    summary="Вебхук BitGo о переводе (депозит)",
)
async def bitgo_webhook(
    request: Request,
    runner: BackgroundRunner = Depends(get_background_runner),
    ingestor: DepositIngestor = Depends(get_deposit_ingestor),
) -> Any:
    """
    Что делает:
      • Проверяет форму события и ставит ingest() в фон под именем deposit:<hash>.
    Выход:
      • 200 сразу после постановки в фон; 400 при структурной ошибке.
    """
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return _reject(INVALID_TYPE)

    logger.info("BitGo webhook received: %s", body)

    if not isinstance(body, dict) or body.get("type") != "transfer":
        return _reject(INVALID_TYPE)

    try:
        TransferWebhook.model_validate(body)
    except ValidationError as exc:
        logger.warning("Incomplete webhook data: %s", exc.errors(include_url=False))
        return _reject(INCOMPLETE_DATA)

    event = DepositEvent.from_webhook(body)
    runner.submit(ingestor.ingest(event), name=f"deposit:{event.tx_hash}")
    return WebhookAck()


__all__ = ["router"]
