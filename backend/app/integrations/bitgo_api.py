# -*- coding: utf-8 -*-
# backend/app/integrations/bitgo_api.py
# =============================================================================
# Deposit Ledger: интеграция с BitGo API v2 (кастодиальные кошельки)
# -----------------------------------------------------------------------------
# Назначение:
#   • Создание нового адреса приёма в кошельке BitGo:
#       POST {BITGO_API_URL}/{coin}/wallet/{walletId}/address  (тело {}).
#   • Не меняет балансы и не пишет в БД: только сетевой вызов.
#
# Канон/инварианты:
#   • Авторизация: Authorization: Bearer <BITGO_ACCESS_TOKEN>.
#   • Одна попытка на вызов; ретраев нет (решение: на стороне вызывающего).
#   • Любая неудача (HTTP-статус, сеть, ответ без address) → ProviderFailure
#     с кодом монеты и телом ответа (если было).
#
# ИИ-защиты:
#   • Таймауты httpx (NETWORK_REQUEST_TIMEOUT_SEC) защищают от зависаний.
#   • Токен в логи не пишется (RedactingFilter в logging_core маскирует его).
# =============================================================================
from __future__ import annotations

from typing import Any, Optional

import httpx

from backend.app.core.config_core import get_settings
from backend.app.core.errors_core import ProviderFailure
from backend.app.core.logging_core import get_logger

logger = get_logger(__name__)
settings = get_settings()


class BitGoClient:
    """Лёгкий клиент BitGo: выдача адресов приёма по кошельку."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.BITGO_API_URL).rstrip("/")
        self.access_token = access_token if access_token is not None else settings.BITGO_ACCESS_TOKEN
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.NETWORK_REQUEST_TIMEOUT_SEC
        )
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token or ''}",
            "Content-Type": "application/json",
        }

    async def create_address(self, coin: str, wallet_id: str) -> str:
        """Создать адрес в кошельке wallet_id для монеты coin и вернуть его.

        Исключения: ProviderFailure (coin, body) при любой неудаче.
        """

        url = f"{self.base_url}/{coin}/wallet/{wallet_id}/address"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json={}, headers=self._headers())
                response.raise_for_status()
                payload: Any = response.json()
        except httpx.HTTPStatusError as exc:
            body = exc.response.text
            raise ProviderFailure(
                f"BitGo responded with HTTP {exc.response.status_code}",
                coin=coin,
                body=body,
                details={"status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderFailure(f"BitGo request failed: {exc}", coin=coin) from exc
        except ValueError as exc:
            raise ProviderFailure("BitGo returned a non-JSON response", coin=coin) from exc

        address = payload.get("address") if isinstance(payload, dict) else None
        if not address or not isinstance(address, str):
            raise ProviderFailure(
                "BitGo response has no address",
                coin=coin,
                body=str(payload),
            )
        logger.debug("[BitGo] address created", extra={"coin": coin})
        return address


__all__ = ["BitGoClient"]
