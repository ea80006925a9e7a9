# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 项目配置（.env / 环境变量）

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


class VConfig(BaseSettings):
    """Project configuration loaded from .env."""

    model_config = SettingsConfigDict(
        env_file=str(_project_root() / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---------- App & Logging ----------
    app_env: str = Field("dev", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_requests: bool = Field(True, validation_alias="LOG_REQUESTS")
    request_id_header: str = Field("X-Request-ID", validation_alias="REQUEST_ID_HEADER")
    generate_request_id: bool = Field(True, validation_alias="GENERATE_REQUEST_ID")

    cors_origins: str = Field("*", validation_alias="CORS_ORIGINS")

    # ---------- Database ----------
    db_url: str = Field(..., validation_alias="DB_URL")
    sql_echo: bool = Field(False, validation_alias="SQL_ECHO")

    # ---------- Auth/JWT ----------
    jwt_secret_key: str = Field(..., validation_alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", validation_alias="JWT_ALGORITHM")
    jwt_expire_minutes: int = Field(1440, validation_alias="JWT_EXPIRE_MINUTES", ge=1)

    default_admin_username: str = Field("admin", validation_alias="DEFAULT_ADMIN_USERNAME")
    default_admin_password: str = Field("admin123", validation_alias="DEFAULT_ADMIN_PASSWORD")

    # ---------- Chat ----------
    chat_ws_path: str = Field("/ws", validation_alias="CHAT_WS_PATH")
    chat_session_header: str = Field("X-Chat-Session", validation_alias="CHAT_SESSION_HEADER")
    # bounded by chat_room.last_message_preview String(255)
    chat_preview_max_length: int = Field(100, validation_alias="CHAT_PREVIEW_MAX_LENGTH", ge=1, le=255)
    chat_reconnect_delay_seconds: float = Field(3.0, validation_alias="CHAT_RECONNECT_DELAY_SECONDS", gt=0)
    chat_history_limit: int = Field(500, validation_alias="CHAT_HISTORY_LIMIT", ge=1)

    @field_validator("chat_ws_path", mode="before")
    @classmethod
    def _normalize_ws_path(cls, v):
        # "ws" -> "/ws"
        if v is None or (isinstance(v, str) and not v.strip()):
            return "/ws"
        v = str(v).strip()
        return v if v.startswith("/") else f"/{v}"


@lru_cache(maxsize=1)
def get_config() -> VConfig:
    return VConfig()


vconfig = get_config()
