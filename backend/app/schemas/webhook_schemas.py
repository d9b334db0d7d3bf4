# -*- coding: utf-8 -*-
# backend/app/schemas/webhook_schemas.py
# =============================================================================
# Назначение кода:
# Pydantic-схемы вебхука BitGo о переводе ("transfer") и ответов на него.
#
# Канон / инварианты:
# • Обязательные поля перевода: hash, coin, state, receiver, valueString:
#   непустые строки (никаких неявных приведений чисел к строкам).
# • Лишние поля вебхука допускаются и сохраняются в аудит как есть.
# • Ответ вебхуку не отражает бизнес-исход обработки депозита.
#
# Запреты:
# • Никакой бизнес-логики: только форма данных/валидация.
# =============================================================================

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class TransferWebhook(BaseModel):
    """Тело вебхука BitGo о переводе (после проверки type == "transfer")."""

    model_config = ConfigDict(extra="allow")

    type: StrictStr = Field(..., description='Тип события; принимается только "transfer"')
    hash: StrictStr = Field(..., min_length=1, description="Blockchain tx hash (ключ идемпотентности)")
    coin: StrictStr = Field(..., min_length=1, description="Код монеты BitGo (tbtc4, tsol, ...)")
    state: StrictStr = Field(..., min_length=1, description="Состояние перевода у провайдера")
    receiver: StrictStr = Field(..., min_length=1, description="Адрес получателя")
    valueString: StrictStr = Field(
        ..., min_length=1, description="Сумма в минимальных единицах валюты (строка цифр)"
    )


class WebhookAck(BaseModel):
    success: bool = Field(True, description="Вебхук принят в обработку")
    message: str = Field("Webhook received")


class WebhookRejection(BaseModel):
    success: bool = Field(False)
    error: str = Field(..., description="Причина отклонения (структурная)")


__all__ = ["TransferWebhook", "WebhookAck", "WebhookRejection"]
