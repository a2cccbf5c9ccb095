from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from mgmt_client.errors import RestApiError, TransportError
from mgmt_client.hooks.observability import EventLogger
from mgmt_client.models import RestClientOptions

PLACEHOLDER_PATTERN = re.compile(r"/:([A-Za-z_][A-Za-z0-9_]*)")


class RestClient:
    """
    REST resource bound to a URL template such as ``https://host/api/v2/jobs/:id``.
    Placeholders are filled from ``params``; leftover params go to the query string.
    """

    def __init__(
        self,
        resource_url: str,
        options: RestClientOptions | None = None,
        token_provider: Any = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.resource_url = resource_url
        self.options = options or RestClientOptions()
        self.token_provider = token_provider
        self.transport = transport
        self.logger = event_logger or EventLogger()

    async def get(self, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", params)

    async def create(self, *args: Any) -> Any:
        params, data = _split_params_and_data(args)
        return await self.request("POST", params, data)

    async def request(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        data: Any = None,
    ) -> Any:
        url, query = resolve_url(self.resource_url, params or {})
        headers = await self._build_headers()
        request_kwargs: dict[str, Any] = {
            "headers": headers,
            "params": encode_query(query, repeat_params=self.options.repeat_params),
        }
        if data is not None:
            request_kwargs["json"] = data

        self.logger.on_http_call(method, url, "start")
        timeout = httpx.Timeout(self.options.timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            try:
                response = await client.request(method, url, **request_kwargs)
            except httpx.RequestError as exc:
                self.logger.on_http_call(method, url, "transport_error")
                raise TransportError(f"cannot {method} {url}: {exc}", cause=exc) from exc

        if response.status_code >= 400:
            self.logger.on_http_call(method, url, "error", response.status_code)
            raise self._format_error(response, method=method, url=url)
        self.logger.on_http_call(method, url, "success", response.status_code)
        return _parse_body(response)

    async def _build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        headers.update(self.options.headers)
        if self.token_provider is not None:
            access_token = await self.token_provider.get_access_token()
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _format_error(self, response: httpx.Response, *, method: str, url: str) -> RestApiError:
        text = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        message: str | None = None
        name: str | None = None
        error_code: str | None = None
        if isinstance(body, dict):
            formatter = self.options.error_formatter
            message = _as_text(body.get(formatter.get("message", "message")))
            name = _as_text(body.get(formatter.get("name", "error")))
            error_code = _as_text(body.get("errorCode"))
        return RestApiError(
            message or f"cannot {method} {url} ({response.status_code})",
            name=name or "Error",
            status_code=response.status_code,
            method=method,
            url=url,
            text=text,
            error_code=error_code,
            headers=dict(response.headers),
        )


def resolve_url(template: str, params: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    remaining = dict(params)

    def _substitute(match: re.Match[str]) -> str:
        value = remaining.pop(match.group(1), None)
        if value is None or value == "":
            return ""
        return "/" + quote(str(value), safe="")

    return PLACEHOLDER_PATTERN.sub(_substitute, template), remaining


def encode_query(params: Mapping[str, Any], *, repeat_params: bool = True) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            items = [_query_value(item) for item in value if item is not None]
            if repeat_params:
                pairs.extend((key, item) for item in items)
            else:
                pairs.append((key, ",".join(items)))
            continue
        pairs.append((key, _query_value(value)))
    return pairs


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _split_params_and_data(args: tuple[Any, ...]) -> tuple[Mapping[str, Any] | None, Any]:
    if len(args) == 1:
        return None, args[0]
    if len(args) == 2:
        return args[0], args[1]
    raise TypeError(f"create() takes (data) or (params, data), got {len(args)} arguments")


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    return None
