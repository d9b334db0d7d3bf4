# -*- coding: utf-8 -*-
# backend/app/core/config_core.py
# =============================================================================
# Назначение:
#   • Единый конфигурационный модуль Deposit Ledger (FastAPI + SQLAlchemy async).
#   • Канонический источник всех настроек (БД, BitGo-кошельки, логирование,
#     фоновые задачи).
#
# Канон / инварианты:
#   1) Секреты (BITGO_ACCESS_TOKEN, DATABASE_URL) берём только из ENV/.env.
#   2) Набор кошельков провайдера: явная структура (wallet_targets()),
#      а не глобальные переменные, раскиданные по модулям.
#   3) Кошелёк без wallet_id не участвует в выдаче адресов (пропускается).
#   4) Decimal: ROUND_DOWN + достаточный precision для сумм в минимальных
#      единицах (сатоши/лампорты/ловеласы).
#
# ИИ-защита / самодиагностика:
#   • initialize_runtime() проверяет DSN, настраивает Decimal, печатает
#     предупреждения по секретам и кошелькам, но процесс не роняет.
#   • database_url_async() приводит postgres:// к postgresql+asyncpg://.
# =============================================================================

from __future__ import annotations

from decimal import ROUND_DOWN, getcontext
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Док-описания полей (используются в Swagger и как подсказки «для чайника»)
# =============================================================================


class _Doc:
    # Приложение
    PROJECT_NAME = "Имя проекта (отображается в Swagger/health/логах)."
    ENV = "Окружение: production/dev/local (нормализуется в prod/dev/local)."
    DEBUG = "Расширенные логи и трассировки (только для dev/local)."
    APP_VERSION = "Версия приложения (попадает в /health)."
    APP_HOST = "Адрес для uvicorn (обычно 0.0.0.0)."
    APP_PORT = "Порт для uvicorn (например, 8000)."
    API_PREFIX = "Префикс REST API, например /api."

    # БД
    DATABASE_URL = (
        "DSN PostgreSQL. Будет автоматически приведён к async "
        "(postgresql+asyncpg://). sqlite+aiosqlite:// передаётся как есть."
    )
    DB_POOL_SIZE = "Размер пула соединений SQLAlchemy."
    DB_MAX_OVERFLOW = "Дополнительные соединения в пике."
    DB_SCHEMA_CORE = "Схема с ядром леджера (пустая строка: без схемы)."

    # BitGo
    BITGO_API_URL = "Базовый URL BitGo API v2 (testnet по умолчанию)."
    BITGO_ACCESS_TOKEN = "Bearer-токен BitGo. Без него адреса не выдаются."
    BTC_COIN = "Код монеты BitGo для BTC (например, tbtc4)."
    BTC_WALLET_ID = "ID кошелька BitGo для BTC."
    ADA_COIN = "Код монеты BitGo для ADA (например, tada)."
    ADA_WALLET_ID = "ID кошелька BitGo для ADA."
    SOL_COIN = "Код монеты BitGo для SOL (например, tsol)."
    SOL_WALLET_ID = "ID кошелька BitGo для SOL."
    DOGE_COIN = "Код монеты BitGo для DOGE (например, tdoge)."
    DOGE_WALLET_ID = "ID кошелька BitGo для DOGE."

    # Сеть / фон
    NETWORK_REQUEST_TIMEOUT_SEC = "Таймаут сетевых запросов к провайдеру (сек)."
    BACKGROUND_DRAIN_TIMEOUT_SEC = (
        "Сколько ждать завершения фоновых задач при остановке (сек)."
    )

    # Logging
    LOG_LEVEL = "Уровень логирования (INFO/DEBUG/WARNING/ERROR)."
    LOG_FILE = "Путь к файлу логов с ротацией (пусто: только stdout)."
    LOG_FILE_BACKUPS = "Сколько ротированных файлов хранить."
    LOG_FILE_MAX_BYTES = "Максимальный размер одного файла логов (байт)."


# =============================================================================
# Настройки приложения (единственный источник истины)
# =============================================================================


class Settings(BaseSettings):
    """
    Контейнер переменных окружения Deposit Ledger.

    Важное:
      • Секреты берём только из ENV: в код не шьём.
      • Кошельки BitGo описываются парами <COIN, WALLET_ID>; пустой WALLET_ID
        означает «валюта не настроена».
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --------------------------- БАЗОВЫЕ НАСТРОЙКИ ---------------------------
    PROJECT_NAME: str = Field("Deposit Ledger", description=_Doc.PROJECT_NAME)
    ENV: str = Field("production", description=_Doc.ENV)
    DEBUG: bool = Field(False, description=_Doc.DEBUG)
    APP_VERSION: str = Field("1.0.0", description=_Doc.APP_VERSION)

    APP_HOST: str = Field("0.0.0.0", description=_Doc.APP_HOST)
    APP_PORT: int = Field(8000, description=_Doc.APP_PORT)
    API_PREFIX: str = Field("/api", description=_Doc.API_PREFIX)

    # --------------------------------- БАЗА ----------------------------------
    DATABASE_URL: Optional[str] = Field(None, description=_Doc.DATABASE_URL)
    DB_POOL_SIZE: int = Field(10, description=_Doc.DB_POOL_SIZE)
    DB_MAX_OVERFLOW: int = Field(10, description=_Doc.DB_MAX_OVERFLOW)
    DB_SCHEMA_CORE: str = Field("ledger_core", description=_Doc.DB_SCHEMA_CORE)

    # -------------------------------- BITGO ----------------------------------
    BITGO_API_URL: str = Field(
        "https://app.bitgo-test.com/api/v2",
        description=_Doc.BITGO_API_URL,
    )
    BITGO_ACCESS_TOKEN: Optional[str] = Field(
        None,
        description=_Doc.BITGO_ACCESS_TOKEN,
    )

    BTC_COIN: str = Field("tbtc4", description=_Doc.BTC_COIN)
    BTC_WALLET_ID: Optional[str] = Field(None, description=_Doc.BTC_WALLET_ID)
    ADA_COIN: str = Field("tada", description=_Doc.ADA_COIN)
    ADA_WALLET_ID: Optional[str] = Field(None, description=_Doc.ADA_WALLET_ID)
    SOL_COIN: str = Field("tsol", description=_Doc.SOL_COIN)
    SOL_WALLET_ID: Optional[str] = Field(None, description=_Doc.SOL_WALLET_ID)
    DOGE_COIN: str = Field("tdoge", description=_Doc.DOGE_COIN)
    DOGE_WALLET_ID: Optional[str] = Field(None, description=_Doc.DOGE_WALLET_ID)

    # ----------------------------- СЕТЬ / ФОН --------------------------------
    NETWORK_REQUEST_TIMEOUT_SEC: float = Field(
        20.0,
        description=_Doc.NETWORK_REQUEST_TIMEOUT_SEC,
    )
    BACKGROUND_DRAIN_TIMEOUT_SEC: float = Field(
        30.0,
        description=_Doc.BACKGROUND_DRAIN_TIMEOUT_SEC,
    )

    # ------------------------------- ЛОГИРОВАНИЕ -----------------------------
    LOG_LEVEL: str = Field("INFO", description=_Doc.LOG_LEVEL)
    LOG_FILE: Optional[str] = Field(None, description=_Doc.LOG_FILE)
    LOG_FILE_BACKUPS: int = Field(5, description=_Doc.LOG_FILE_BACKUPS)
    LOG_FILE_MAX_BYTES: int = Field(
        10 * 1024 * 1024,
        description=_Doc.LOG_FILE_MAX_BYTES,
    )

    # =========================== ВАЛИДАТОРЫ (ИИ-защита) ======================

    @field_validator(
        "BTC_WALLET_ID",
        "ADA_WALLET_ID",
        "SOL_WALLET_ID",
        "DOGE_WALLET_ID",
        "BITGO_ACCESS_TOKEN",
        "LOG_FILE",
        mode="before",
    )
    @classmethod
    def _v_blank_to_none(cls, value: object) -> Optional[str]:
        """Пустые строки из .env трактуем как «не задано»."""
        if value is None:
            return None
        text_value = str(value).strip()
        return text_value or None

    @field_validator("BTC_COIN", "ADA_COIN", "SOL_COIN", "DOGE_COIN")
    @classmethod
    def _v_coin_code(cls, value: str) -> str:
        return value.strip()

    @field_validator("LOG_LEVEL")
    @classmethod
    def _v_log_level(cls, value: str) -> str:
        level = (value or "INFO").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            print(f"[WARN] LOG_LEVEL={value!r} не распознан. Применяем INFO.")
            return "INFO"
        return level

    # =========================== Удобные свойства/методы =====================

    # ---- ENV флаги ----
    @property
    def env_normalized(self) -> str:
        """Нормализует ENV к одному из: prod/dev/local."""
        value = (self.ENV or "").strip().lower()
        if value.startswith("prod"):
            return "prod"
        if value.startswith("dev") or value.startswith("test"):
            return "dev"
        if value.startswith("loc"):
            return "local"
        return "prod"

    @property
    def is_prod(self) -> bool:
        return self.env_normalized == "prod"

    # ---- База данных / DSN ----
    def database_url_async(self) -> str:
        """
        Возвращает DSN для SQLAlchemy async:
          postgres://   → postgresql+asyncpg://
          postgresql:// → postgresql+asyncpg:// при отсутствии драйвера.
        Остальные async-DSN (например, sqlite+aiosqlite://) не трогаем.
        """
        if not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL не задан (нужен DSN Postgres).")
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def schema_core(self) -> Optional[str]:
        """Схема для ORM-моделей (None: без схемы, например в SQLite)."""
        schema = (self.DB_SCHEMA_CORE or "").strip()
        return schema or None

    # ---- BitGo ----
    def wallet_targets(self) -> List[Tuple[str, str]]:
        """
        Пары (coin, wallet_id) для выдачи адресов.

        Порядок фиксирован (BTC, ADA, SOL, DOGE), кошельки без wallet_id
        пропускаются.
        """
        pairs = [
            (self.BTC_COIN, self.BTC_WALLET_ID),
            (self.ADA_COIN, self.ADA_WALLET_ID),
            (self.SOL_COIN, self.SOL_WALLET_ID),
            (self.DOGE_COIN, self.DOGE_WALLET_ID),
        ]
        return [(coin, wallet_id) for coin, wallet_id in pairs if coin and wallet_id]

    # ---- Decimal / точности ----
    def configure_decimal_context(self) -> None:
        """
        Настраивает глобальный Decimal:
          • precision с запасом под 36 значащих цифр колонок Numeric(36,18),
          • округление по умолчанию: ROUND_DOWN.
        """
        ctx = getcontext()
        ctx.prec = max(ctx.prec, 40)
        ctx.rounding = ROUND_DOWN

    # ---- Health/диагностика ----
    def assert_required_secrets(self) -> None:
        """
        Мягкая самодиагностика критичных секретов/кошельков.
        Печатает WARN, но не падает.
        """
        if not self.DATABASE_URL:
            print("[WARN] DATABASE_URL не задан: БД будет недоступна.")
        if not self.BITGO_ACCESS_TOKEN:
            print(
                "[WARN] BITGO_ACCESS_TOKEN не задан: выдача адресов "
                "пользователям будет пропущена.",
            )
        if not self.wallet_targets():
            print("[WARN] Ни один *_WALLET_ID не задан: адреса выдавать не для чего.")

    def debug_dump(self) -> Dict[str, str]:
        """Безопасный дамп ключевых настроек (без секретов) для /health и логов."""
        return {
            "env": self.env_normalized,
            "projectName": self.PROJECT_NAME,
            "version": self.APP_VERSION,
            "apiPrefix": self.API_PREFIX,
            "dbUrlSet": "yes" if bool(self.DATABASE_URL) else "no",
            "schema": self.schema_core or "-",
            "bitgoApiUrl": self.BITGO_API_URL,
            "bitgoTokenSet": "yes" if bool(self.BITGO_ACCESS_TOKEN) else "no",
            "wallets": ",".join(coin for coin, _ in self.wallet_targets()) or "-",
        }

    # ---- Инициализация рантайма ----
    def ensure_local_artifacts(self) -> None:
        """Создаёт каталог .local_artifacts для local-режима."""
        if self.env_normalized == "local":
            Path(".local_artifacts").mkdir(exist_ok=True)

    def initialize_runtime(self) -> None:
        """
        Единая точка инициализации конфигурации при старте приложения:
          • Проверка DSN БД.
          • Настройка Decimal контекста (ROUND_DOWN).
          • Создание локальных артефактов для local.
          • Мягкая самодиагностика секретов.
        """
        if self.DATABASE_URL:
            _ = self.database_url_async()

        self.configure_decimal_context()
        self.ensure_local_artifacts()
        self.assert_required_secrets()


# =============================================================================
# Синглтон настроек для всего приложения
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """Создаёт и кэширует объект Settings, выполняя initialize_runtime()."""
    settings_obj = Settings()
    settings_obj.initialize_runtime()
    return settings_obj


__all__ = ["Settings", "get_settings"]
