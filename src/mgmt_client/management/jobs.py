from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import httpx

from mgmt_client.config import load_client_options
from mgmt_client.errors import HttpError, InvalidArgumentError, TransportError
from mgmt_client.hooks.observability import EventLogger
from mgmt_client.models import DEFAULT_ERROR_FORMATTER, RestClientOptions
from mgmt_client.rest import RestClient, RetryRestClient

from .callbacks import Callback, settle

JOBS_PATH = "/jobs/:id"
USERS_EXPORTS_PATH = "/jobs/users-exports"
USERS_IMPORTS_PATH = "/jobs/users-imports"
VERIFICATION_EMAIL_JOB_ID = "verification-email"
USERS_JSON_FILENAME = "users.json"

FileOpener = Callable[[str], IO[bytes]]


def open_users_file(path: str) -> IO[bytes]:
    """
    Plain binary file handle. httpx reads it in chunks while streaming the
    upload, so those reads run on the event loop thread; pass an async-aware
    ``file_opener`` when that matters.
    """
    return open(path, "rb")


@dataclass
class UsersImportForm:
    fields: dict[str, str]
    files: dict[str, tuple[str, Any]]
    _handles: list[IO[bytes]] = field(default_factory=list)

    def close(self) -> None:
        for handle in self._handles:
            handle.close()
        self._handles.clear()


def build_users_import_form(
    data: Mapping[str, Any],
    file_opener: FileOpener = open_users_file,
) -> UsersImportForm:
    """
    Multipart parts for a users import: the ``users`` payload plus the
    ``connection_id``, ``upsert`` and ``send_completion_email`` fields.
    """
    handles: list[IO[bytes]] = []
    users_json = data.get("users_json")
    if users_json:
        if isinstance(users_json, str):
            payload: Any = users_json.encode("utf-8")
        elif isinstance(users_json, bytes):
            payload = users_json
        else:
            payload = json.dumps(users_json).encode("utf-8")
        users_part = (USERS_JSON_FILENAME, payload)
    else:
        path = str(data["users"])
        handle = file_opener(path)
        handles.append(handle)
        users_part = (Path(path).name, handle)

    fields = {
        "connection_id": str(data.get("connection_id") or ""),
        "upsert": "true" if data.get("upsert") is True else "false",
        "send_completion_email": "false" if data.get("send_completion_email") is False else "true",
    }
    return UsersImportForm(fields=fields, files={"users": users_part}, _handles=handles)


class JobsManager:
    """
    Creation and retrieval of asynchronous jobs: user imports and exports,
    verification emails.

    ``get`` and ``verify_email`` validate their required ids eagerly and raise
    ``InvalidArgumentError`` synchronously; ``import_users`` reports bad input
    through the awaitable or callback like any other failure. Without a
    callback each method returns an awaitable; with one it returns ``None``
    and reports ``callback(error, result)``. When both ``users`` and
    ``users_json`` are given, ``users_json`` is uploaded.
    """

    def __init__(
        self,
        options: Any,
        *,
        file_opener: FileOpener | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.options = load_client_options(options)
        self.file_opener = file_opener or open_users_file
        self.logger = event_logger or EventLogger()

        client_options = RestClientOptions(
            error_formatter=dict(DEFAULT_ERROR_FORMATTER),
            headers=self.options.headers,
            repeat_params=False,
            timeout_seconds=self.options.timeout_seconds,
        )
        self.jobs = RetryRestClient(
            self._rest_client(JOBS_PATH, client_options),
            self.options.retry,
        )
        self.users_exports = RetryRestClient(
            self._rest_client(USERS_EXPORTS_PATH, client_options),
            self.options.retry,
        )

    def _rest_client(self, path: str, client_options: RestClientOptions) -> RestClient:
        return RestClient(
            self.options.base_url + path,
            client_options,
            self.options.token_provider,
            transport=self.options.transport,
            event_logger=self.logger,
        )

    def get(self, params: Mapping[str, Any], callback: Callback | None = None) -> Awaitable[Any] | None:
        job_id = params.get("id") if isinstance(params, Mapping) else None
        if not job_id or not isinstance(job_id, str):
            raise InvalidArgumentError("The id parameter must be a valid job id")
        return settle(self.jobs.get(params), callback)

    def import_users(
        self,
        data: Mapping[str, Any],
        callback: Callback | None = None,
    ) -> Awaitable[httpx.Response] | None:
        return settle(self._import_users(data), callback)

    def export_users(self, data: Mapping[str, Any], callback: Callback | None = None) -> Awaitable[Any] | None:
        return settle(self.users_exports.create(data), callback)

    def verify_email(self, data: Mapping[str, Any], callback: Callback | None = None) -> Awaitable[Any] | None:
        user_id = data.get("user_id") if isinstance(data, Mapping) else None
        if not user_id or not isinstance(user_id, str):
            raise InvalidArgumentError("Must specify a user ID")
        return settle(self.jobs.create({"id": VERIFICATION_EMAIL_JOB_ID}, data), callback)

    async def _import_users(self, data: Mapping[str, Any]) -> httpx.Response:
        if not isinstance(data, Mapping):
            raise InvalidArgumentError("Must provide users import data")
        if not data.get("users_json") and not data.get("users"):
            raise InvalidArgumentError("Must provide users or users_json")

        url = self.options.base_url + USERS_IMPORTS_PATH
        method = "POST"

        headers: dict[str, str] = {}
        token_provider = self.options.token_provider
        if token_provider is not None:
            access_token = await token_provider.get_access_token()
            headers["Authorization"] = f"Bearer {access_token}"
        # httpx sets multipart/form-data with its boundary
        headers.update(
            {key: value for key, value in self.options.headers.items() if key.lower() != "content-type"}
        )

        form = build_users_import_form(data, self.file_opener)
        self.logger.on_http_call(method, url, "start")
        timeout = httpx.Timeout(self.options.timeout_seconds)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.options.transport) as client:
                request = client.build_request(
                    method,
                    url,
                    headers=headers,
                    data=form.fields,
                    files=form.files,
                )
                try:
                    response = await client.send(request)
                except httpx.RequestError as exc:
                    self.logger.on_http_call(method, url, "transport_error")
                    raise TransportError(f"cannot {method} {url}: {exc}", cause=exc) from exc
        finally:
            form.close()

        if response.status_code // 100 in (4, 5):
            self.logger.on_http_call(method, url, "error", response.status_code)
            raise HttpError(
                f"cannot {method} {url} ({response.status_code})",
                status_code=response.status_code,
                method=method,
                url=url,
                text=response.text,
            )
        self.logger.on_http_call(method, url, "success", response.status_code)
        return response
