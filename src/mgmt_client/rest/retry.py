from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import ValidationError

from mgmt_client.errors import InvalidArgumentError, RestApiError
from mgmt_client.hooks.observability import EventLogger
from mgmt_client.models import RetryPolicy

from .client import RestClient

RATE_LIMITED_STATUS = 429


class RetryRestClient:
    """Wraps a RestClient and retries rate-limited (HTTP 429) calls."""

    def __init__(
        self,
        rest_client: RestClient,
        policy: RetryPolicy | Mapping[str, Any] | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.rest_client = rest_client
        self.policy = _coerce_policy(policy)
        self._sleep = sleep
        self.logger = event_logger or rest_client.logger

    async def get(self, params: Mapping[str, Any] | None = None) -> Any:
        return await self._invoke("get", params)

    async def create(self, *args: Any) -> Any:
        return await self._invoke("create", *args)

    async def _invoke(self, method_name: str, *args: Any) -> Any:
        operation = getattr(self.rest_client, method_name)
        if not self.policy.enabled:
            return await operation(*args)

        attempt = 1
        while True:
            try:
                return await operation(*args)
            except RestApiError as exc:
                if exc.status_code != RATE_LIMITED_STATUS or attempt > self.policy.max_retries:
                    raise
                delay = self._delay_for(attempt, exc)
                self.logger.on_retry(method_name, attempt, delay)
                await self._sleep(delay)
                attempt += 1

    def _delay_for(self, attempt: int, error: RestApiError) -> float:
        headers = {key.lower(): value for key, value in error.headers.items()}
        delay: float | None = None

        retry_after = _to_float(headers.get("retry-after"))
        if retry_after is not None:
            delay = retry_after
        else:
            reset_at = _to_float(headers.get("x-ratelimit-reset"))
            if reset_at is not None:
                delay = reset_at - time.time()

        if delay is None or delay < 0:
            schedule = self.policy.backoff_schedule_seconds
            delay = schedule[min(attempt - 1, len(schedule) - 1)]
        return min(delay, self.policy.max_delay_seconds)


def _coerce_policy(policy: RetryPolicy | Mapping[str, Any] | None) -> RetryPolicy:
    if policy is None:
        return RetryPolicy()
    if isinstance(policy, RetryPolicy):
        return policy
    if not isinstance(policy, Mapping):
        raise InvalidArgumentError("Retry options must be a mapping")
    try:
        return RetryPolicy.model_validate(dict(policy))
    except ValidationError as exc:
        raise InvalidArgumentError(f"Invalid retry options: {exc}") from exc


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
