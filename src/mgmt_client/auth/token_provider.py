from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

import httpx

from mgmt_client.errors import HttpError, InvalidArgumentError, ManagementError, TransportError
from mgmt_client.hooks.observability import EventLogger
from mgmt_client.hooks.security import mask_sensitive_text
from mgmt_client.models import AccessToken


@runtime_checkable
class TokenProvider(Protocol):
    async def get_access_token(self) -> str: ...


class StaticTokenProvider:
    """Hands out a pre-issued access token."""

    def __init__(self, token: str) -> None:
        if not isinstance(token, str) or not token.strip():
            raise InvalidArgumentError("Must provide a non-empty access token")
        self.token = token.strip()

    async def get_access_token(self) -> str:
        return self.token


class ClientCredentialsTokenProvider:
    """
    Client-credentials grant against ``https://<domain>/oauth/token``.
    Tokens are cached until they get within ``refresh_leeway_seconds`` of expiry.
    """

    def __init__(
        self,
        *,
        domain: str,
        client_id: str,
        client_secret: str,
        audience: str | None = None,
        scope: str | None = None,
        enable_cache: bool = True,
        refresh_leeway_seconds: int = 10,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        for name, value in (("domain", domain), ("client_id", client_id), ("client_secret", client_secret)):
            if not isinstance(value, str) or not value.strip():
                raise InvalidArgumentError(f"Must provide a {name}")
        self.domain = domain.strip().rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience or f"https://{self.domain}/api/v2/"
        self.scope = scope
        self.enable_cache = enable_cache
        self.refresh_leeway_seconds = max(0, refresh_leeway_seconds)
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.logger = event_logger or EventLogger()
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    @property
    def token_url(self) -> str:
        return f"https://{self.domain}/oauth/token"

    async def get_access_token(self) -> str:
        async with self._lock:
            if self.enable_cache and self._token and not self._token.expires_within(
                self.refresh_leeway_seconds
            ):
                return self._token.access_token
            payload = await self._request_token()
            if not isinstance(payload, dict) or not payload.get("access_token"):
                raise ManagementError("token response did not include an access_token")
            self._token = AccessToken.from_token_response(payload)
            return self._token.access_token

    async def _request_token(self) -> Any:
        body = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "audience": self.audience,
        }
        if self.scope:
            body["scope"] = self.scope

        self.logger.on_token_request(self.domain, "start")
        timeout = httpx.Timeout(self.timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    self.token_url,
                    headers={"Accept": "application/json"},
                    json=body,
                )
            except httpx.RequestError as exc:
                self.logger.on_token_request(self.domain, "error")
                raise TransportError(
                    f"token request to {self.token_url} failed: {exc}", cause=exc
                ) from exc

        if response.status_code >= 400:
            self.logger.on_token_request(self.domain, "error")
            raise HttpError(
                f"cannot POST {self.token_url} ({response.status_code})",
                status_code=response.status_code,
                method="POST",
                url=self.token_url,
                text=mask_sensitive_text(response.text),
            )
        self.logger.on_token_request(self.domain, "success")
        try:
            return response.json()
        except ValueError as exc:
            raise ManagementError("token response was not valid JSON") from exc
