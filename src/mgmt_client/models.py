from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

MAX_REQUEST_RETRY_COUNT = 10

DEFAULT_ERROR_FORMATTER = {"message": "message", "name": "error"}


class RetryPolicy(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    enabled: bool = True
    max_retries: int = 3
    backoff_schedule_seconds: list[float] = Field(default_factory=lambda: [1, 2, 4, 8])
    max_delay_seconds: float = 30.0

    @model_validator(mode="after")
    def validate_retry_config(self) -> "RetryPolicy":
        if self.max_retries < 1 or self.max_retries > MAX_REQUEST_RETRY_COUNT:
            raise ValueError(f"max_retries must be between 1 and {MAX_REQUEST_RETRY_COUNT}")
        if not self.backoff_schedule_seconds:
            raise ValueError("backoff_schedule_seconds must not be empty")
        if any(v <= 0 for v in self.backoff_schedule_seconds):
            raise ValueError("backoff_schedule_seconds must be positive")
        if self.max_delay_seconds <= 0:
            raise ValueError("max_delay_seconds must be positive")
        return self


class RestClientOptions(BaseModel):
    error_formatter: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ERROR_FORMATTER))
    headers: dict[str, str] = Field(default_factory=dict)
    repeat_params: bool = True
    timeout_seconds: float = 30.0


class ClientOptions(BaseModel):
    """Options shared by every manager. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    base_url: str
    headers: dict[str, str] = Field(default_factory=dict)
    token_provider: Any = None
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    timeout_seconds: float = 30.0
    transport: Any = None


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime
    scope: str | None = None

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at

    def expires_within(self, seconds: float) -> bool:
        return datetime.now(timezone.utc) + timedelta(seconds=seconds) >= self.expires_at

    @classmethod
    def from_token_response(cls, payload: dict[str, Any]) -> "AccessToken":
        expires_in = int(payload.get("expires_in", 86400))
        return cls(
            access_token=payload["access_token"],
            token_type=payload.get("token_type", "Bearer"),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            scope=payload.get("scope"),
        )


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


class UserExportField(BaseModel):
    name: str
    export_as: str | None = None
