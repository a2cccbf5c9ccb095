from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

DEFAULT_MAX_EVENTS = 500


@dataclass
class HookEvent:
    at: datetime
    kind: str
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


class EventLogger:
    """Keeps the most recent ``max_events`` events; older ones are dropped."""

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        if max_events < 1:
            raise ValueError("max_events must be >= 1")
        self._events: deque[HookEvent] = deque(maxlen=max_events)

    @property
    def max_events(self) -> int:
        return self._events.maxlen or 0

    def record(self, kind: str, name: str, payload: dict[str, Any] | None = None) -> None:
        self._events.append(
            HookEvent(
                at=datetime.now(timezone.utc),
                kind=kind,
                name=name,
                payload=payload or {},
            )
        )

    def on_http_call(
        self,
        method: str,
        url: str,
        phase: str,
        status_code: int | None = None,
    ) -> None:
        payload: dict[str, Any] = {"method": method, "url": url}
        if status_code is not None:
            payload["status_code"] = status_code
        self.record("http_call", phase, payload)

    def on_retry(self, method: str, attempt: int, delay_seconds: float) -> None:
        self.record("retry", method, {"attempt": attempt, "delay_seconds": delay_seconds})

    def on_token_request(self, domain: str, phase: str) -> None:
        self.record("token_request", phase, {"domain": domain})

    def list_events(self, kind: str | None = None) -> list[HookEvent]:
        if kind is None:
            return list(self._events)
        return [event for event in self._events if event.kind == kind]
