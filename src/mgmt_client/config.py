from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidArgumentError
from .models import ClientOptions, RetryPolicy

ENV_PREFIX = "MGMT_CLIENT_"


class ManagementSettings(BaseModel):
    domain: str | None = None
    base_url: str | None = None
    token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    audience: str | None = None
    scope: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


def load_client_options(options: Any) -> ClientOptions:
    """Validate caller options eagerly, before any client is built."""
    if isinstance(options, ClientOptions):
        raw: dict[str, Any] = {"base_url": options.base_url}
    elif isinstance(options, Mapping):
        raw = dict(options)
    else:
        raise InvalidArgumentError("Must provide client options")

    base_url = raw.get("base_url", raw.get("baseUrl"))
    if base_url is None:
        raise InvalidArgumentError("Must provide a base URL for the API")
    if not isinstance(base_url, str) or len(base_url) == 0:
        raise InvalidArgumentError("The provided base URL is invalid")

    if isinstance(options, ClientOptions):
        return options
    if raw.get("headers") is None:
        raw.pop("headers", None)
    if raw.get("retry") is None:
        raw.pop("retry", None)
    try:
        return ClientOptions.model_validate(raw)
    except ValidationError as exc:
        raise InvalidArgumentError(f"Invalid client options: {exc}") from exc


def settings_from_env(environ: Mapping[str, str] | None = None) -> ManagementSettings:
    env = environ if environ is not None else os.environ

    def _text(name: str) -> str | None:
        value = env.get(f"{ENV_PREFIX}{name}")
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    retry_fields: dict[str, Any] = {"enabled": (_text("RETRY_ENABLED") or "1") == "1"}
    try:
        max_retries = _text("MAX_RETRIES")
        if max_retries is not None:
            retry_fields["max_retries"] = int(max_retries)
        return ManagementSettings(
            domain=_text("DOMAIN"),
            base_url=_text("BASE_URL"),
            token=_text("TOKEN"),
            client_id=_text("CLIENT_ID"),
            client_secret=_text("CLIENT_SECRET"),
            audience=_text("AUDIENCE"),
            scope=_text("SCOPE"),
            timeout_seconds=float(_text("TIMEOUT_SECONDS") or "30"),
            retry=RetryPolicy(**retry_fields),
        )
    except ValueError as exc:
        raise InvalidArgumentError(f"invalid {ENV_PREFIX}* environment: {exc}") from exc
