from __future__ import annotations

from typing import Any


class ManagementError(RuntimeError):
    pass


class InvalidArgumentError(ManagementError, ValueError):
    pass


class TransportError(ManagementError):
    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class HttpError(ManagementError):
    """Request completed but the server answered with a 4xx/5xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        method: str,
        url: str,
        text: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.method = method
        self.url = url
        self.text = text

    @property
    def status(self) -> int:
        return self.status_code


class RestApiError(HttpError):
    def __init__(
        self,
        message: str,
        *,
        name: str = "Error",
        status_code: int,
        method: str,
        url: str,
        text: str = "",
        error_code: str | None = None,
        headers: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, method=method, url=url, text=text)
        self.name = name
        self.error_code = error_code
        self.headers = headers or {}
