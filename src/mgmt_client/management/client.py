from __future__ import annotations

from collections.abc import Awaitable, Mapping
from typing import Any

import httpx

from mgmt_client import __version__
from mgmt_client.auth import ClientCredentialsTokenProvider, StaticTokenProvider
from mgmt_client.config import load_client_options, settings_from_env
from mgmt_client.errors import InvalidArgumentError
from mgmt_client.hooks.observability import EventLogger
from mgmt_client.models import ClientOptions, RetryPolicy

from .callbacks import Callback
from .jobs import FileOpener, JobsManager


class ManagementClient:
    """Entry point for the management API; builds the base URL and token provider."""

    def __init__(
        self,
        *,
        domain: str | None = None,
        base_url: str | None = None,
        token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        audience: str | None = None,
        scope: str | None = None,
        headers: Mapping[str, str] | None = None,
        retry: RetryPolicy | Mapping[str, Any] | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        file_opener: FileOpener | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        if not domain and not base_url:
            raise InvalidArgumentError("Must provide a domain or a base URL")
        self.domain = domain.strip().rstrip("/") if domain else None
        self.base_url = base_url or f"https://{self.domain}/api/v2"
        self.logger = event_logger or EventLogger()

        if token:
            self.token_provider: Any = StaticTokenProvider(token)
        elif self.domain and client_id and client_secret:
            self.token_provider = ClientCredentialsTokenProvider(
                domain=self.domain,
                client_id=client_id,
                client_secret=client_secret,
                audience=audience,
                scope=scope,
                timeout_seconds=timeout_seconds,
                transport=transport,
                event_logger=self.logger,
            )
        else:
            raise InvalidArgumentError(
                "Must provide a token, or a domain with client_id and client_secret"
            )

        request_headers = {"User-Agent": f"mgmt-client/{__version__}"}
        request_headers.update(headers or {})
        options: dict[str, Any] = {
            "base_url": self.base_url,
            "headers": request_headers,
            "token_provider": self.token_provider,
            "timeout_seconds": timeout_seconds,
            "transport": transport,
        }
        if retry is not None:
            options["retry"] = retry
        self.options: ClientOptions = load_client_options(options)
        self.jobs = JobsManager(self.options, file_opener=file_opener, event_logger=self.logger)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "ManagementClient":
        settings = settings_from_env(environ)
        kwargs: dict[str, Any] = settings.model_dump(exclude_none=True)
        kwargs["retry"] = settings.retry
        kwargs.update(overrides)
        return cls(**kwargs)

    def get_job(self, params: Mapping[str, Any], callback: Callback | None = None) -> Awaitable[Any] | None:
        return self.jobs.get(params, callback)

    def import_users(
        self,
        data: Mapping[str, Any],
        callback: Callback | None = None,
    ) -> Awaitable[httpx.Response] | None:
        return self.jobs.import_users(data, callback)

    def export_users(self, data: Mapping[str, Any], callback: Callback | None = None) -> Awaitable[Any] | None:
        return self.jobs.export_users(data, callback)

    def send_email_verification(
        self,
        data: Mapping[str, Any],
        callback: Callback | None = None,
    ) -> Awaitable[Any] | None:
        return self.jobs.verify_email(data, callback)
