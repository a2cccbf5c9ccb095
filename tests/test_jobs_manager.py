import asyncio
import inspect
import json
import re
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from mgmt_client.auth import StaticTokenProvider
from mgmt_client.errors import HttpError, InvalidArgumentError, RestApiError, TransportError
from mgmt_client.hooks.observability import EventLogger
from mgmt_client.management.jobs import JobsManager, build_users_import_form

BASE_URL = "https://tenant.example.com/api/v2"


def _manager(
    handler: Callable[[httpx.Request], httpx.Response],
    **options: Any,
) -> JobsManager:
    file_opener = options.pop("file_opener", None)
    event_logger = options.pop("event_logger", None)
    return JobsManager(
        {
            "base_url": BASE_URL,
            "token_provider": StaticTokenProvider("token-abc"),
            "transport": httpx.MockTransport(handler),
            **options,
        },
        file_opener=file_opener,
        event_logger=event_logger,
    )


def _multipart_parts(request: httpx.Request) -> dict[str, tuple[str | None, bytes]]:
    content_type = request.headers["content-type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    boundary = content_type.split("boundary=", 1)[1].encode("ascii")
    parts: dict[str, tuple[str | None, bytes]] = {}
    for chunk in request.content.split(b"--" + boundary):
        chunk = chunk.strip(b"\r\n")
        if not chunk or chunk == b"--":
            continue
        head, _, body = chunk.partition(b"\r\n\r\n")
        disposition = head.split(b"\r\n")[0].decode("utf-8")
        name = re.search(r'name="([^"]+)"', disposition).group(1)
        filename = re.search(r'filename="([^"]*)"', disposition)
        parts[name] = (filename.group(1) if filename else None, body)
    return parts


@pytest.mark.parametrize(
    "options",
    [
        None,
        "https://tenant.example.com/api/v2",
        {},
        {"base_url": None},
        {"base_url": 123},
        {"base_url": ""},
    ],
)
def test_constructor_rejects_invalid_options(options: Any) -> None:
    with pytest.raises(InvalidArgumentError):
        JobsManager(options)


def test_constructor_accepts_camel_case_options() -> None:
    manager = JobsManager({"baseUrl": BASE_URL, "headers": {"X-Trace": "1"}})

    assert manager.options.base_url == BASE_URL
    assert manager.options.headers == {"X-Trace": "1"}
    assert manager.jobs.rest_client.resource_url == f"{BASE_URL}/jobs/:id"
    assert manager.users_exports.rest_client.resource_url == f"{BASE_URL}/jobs/users-exports"
    assert manager.jobs.rest_client.options.repeat_params is False
    assert manager.jobs.rest_client.options.error_formatter == {"message": "message", "name": "error"}


@pytest.mark.parametrize("params", [{}, {"id": ""}, {"id": 42}, None])
def test_get_requires_job_id(params: Any) -> None:
    calls: list[httpx.Request] = []
    manager = _manager(lambda request: calls.append(request) or httpx.Response(200))

    with pytest.raises(InvalidArgumentError):
        manager.get(params)
    assert calls == []


def test_get_fetches_job_by_id() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"id": "job_abc", "status": "pending", "type": "users_import"})

    manager = _manager(handler)
    job = asyncio.run(manager.get({"id": "job_abc"}))

    assert job == {"id": "job_abc", "status": "pending", "type": "users_import"}
    assert len(calls) == 1
    assert calls[0].method == "GET"
    assert str(calls[0].url) == f"{BASE_URL}/jobs/job_abc"
    assert calls[0].headers["authorization"] == "Bearer token-abc"


def test_repeated_gets_keep_event_history_bounded() -> None:
    logger = EventLogger(max_events=50)
    manager = _manager(lambda request: httpx.Response(200, json={"id": "job_abc"}), event_logger=logger)

    async def scenario() -> None:
        for _ in range(200):
            await manager.get({"id": "job_abc"})

    asyncio.run(scenario())

    events = logger.list_events()
    assert len(events) == 50
    assert events[-1].name == "success"


def test_get_joins_list_query_params_without_repeating_keys() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"id": "job_abc"})

    manager = _manager(handler)
    asyncio.run(manager.get({"id": "job_abc", "fields": ["id", "status"]}))

    assert calls[0].url.path == "/api/v2/jobs/job_abc"
    assert calls[0].url.params.get_list("fields") == ["id,status"]


def test_get_surfaces_formatted_api_error() -> None:
    manager = _manager(
        lambda request: httpx.Response(404, json={"error": "Not Found", "message": "The job does not exist."})
    )

    with pytest.raises(RestApiError) as exc_info:
        asyncio.run(manager.get({"id": "job_missing"}))

    assert exc_info.value.status_code == 404
    assert exc_info.value.name == "Not Found"
    assert str(exc_info.value) == "The job does not exist."


def test_get_retries_rate_limited_response() -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            return httpx.Response(429, headers={"Retry-After": "0"}, json={"error": "Too Many Requests"})
        return httpx.Response(200, json={"id": "job_abc"})

    logger = EventLogger()
    manager = _manager(handler, event_logger=logger)
    job = asyncio.run(manager.get({"id": "job_abc"}))

    assert job == {"id": "job_abc"}
    assert attempts["count"] == 2
    assert len(logger.list_events("retry")) == 1


@pytest.mark.parametrize("data", [{}, {"user_id": ""}, {"user_id": 7}])
def test_verify_email_requires_user_id(data: dict) -> None:
    manager = _manager(lambda request: httpx.Response(201))

    with pytest.raises(InvalidArgumentError):
        manager.verify_email(data)


def test_verify_email_posts_verification_job() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(201, json={"id": "job_1", "type": "verification_email", "status": "pending"})

    manager = _manager(handler)
    job = asyncio.run(manager.verify_email({"user_id": "u1", "client_id": "app_1"}))

    assert job["type"] == "verification_email"
    assert len(calls) == 1
    assert calls[0].method == "POST"
    assert str(calls[0].url) == f"{BASE_URL}/jobs/verification-email"
    assert json.loads(calls[0].content) == {"user_id": "u1", "client_id": "app_1"}


def test_export_users_passes_data_through() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(201, json={"id": "job_export", "type": "users_export"})

    data = {
        "connection_id": "con_1",
        "format": "csv",
        "limit": 5,
        "fields": [{"name": "email"}, {"name": "identities[0].connection", "export_as": "provider"}],
        "unknown_flag": True,
    }
    manager = _manager(handler)
    job = asyncio.run(manager.export_users(data))

    assert job["id"] == "job_export"
    assert calls[0].method == "POST"
    assert str(calls[0].url) == f"{BASE_URL}/jobs/users-exports"
    assert json.loads(calls[0].content) == data


def test_import_users_from_json_payload() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(202, json={"id": "job_import", "status": "pending"})

    users_json = '[{"email": "jane@example.com", "email_verified": false}]'
    manager = _manager(handler, headers={"X-Trace": "trace-1", "Content-Type": "application/json"})
    response = asyncio.run(manager.import_users({"connection_id": "con_1", "users_json": users_json}))

    assert isinstance(response, httpx.Response)
    assert response.status_code == 202
    assert response.json()["id"] == "job_import"

    request = calls[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/jobs/users-imports"
    assert request.headers["authorization"] == "Bearer token-abc"
    assert request.headers["x-trace"] == "trace-1"
    parts = _multipart_parts(request)
    assert parts["users"] == ("users.json", users_json.encode("utf-8"))
    assert parts["connection_id"] == (None, b"con_1")
    assert parts["upsert"] == (None, b"false")
    assert parts["send_completion_email"] == (None, b"true")


def test_import_users_streams_file_from_path(tmp_path: Path) -> None:
    users_file = tmp_path / "users-batch.json"
    users_file.write_text('[{"email": "john@example.com"}]', encoding="utf-8")
    opened: list[Any] = []

    def file_opener(path: str):
        handle = open(path, "rb")
        opened.append(handle)
        return handle

    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(202, json={"id": "job_import"})

    manager = _manager(handler, file_opener=file_opener)
    asyncio.run(
        manager.import_users(
            {
                "connection_id": "con_1",
                "users": str(users_file),
                "upsert": True,
                "send_completion_email": False,
            }
        )
    )

    parts = _multipart_parts(calls[0])
    assert parts["users"] == ("users-batch.json", b'[{"email": "john@example.com"}]')
    assert parts["upsert"] == (None, b"true")
    assert parts["send_completion_email"] == (None, b"false")
    assert len(opened) == 1
    assert opened[0].closed


@pytest.mark.parametrize("data", [{"connection_id": "con_1"}, None])
def test_import_users_missing_source_fails_through_awaitable(data: Any) -> None:
    calls: list[httpx.Request] = []
    manager = _manager(lambda request: calls.append(request) or httpx.Response(202))

    pending = manager.import_users(data)
    assert inspect.isawaitable(pending)

    with pytest.raises(InvalidArgumentError):
        asyncio.run(pending)
    assert calls == []


def test_import_users_missing_source_is_reported_to_callback() -> None:
    calls: list[httpx.Request] = []
    manager = _manager(lambda request: calls.append(request) or httpx.Response(202))

    async def scenario() -> tuple[Any, Any, Any]:
        settled = asyncio.Event()
        received: dict[str, Any] = {}

        def callback(error: Any, result: Any) -> None:
            received["error"] = error
            received["result"] = result
            settled.set()

        returned = manager.import_users({"connection_id": "con_1"}, callback)
        await asyncio.wait_for(settled.wait(), timeout=5)
        return returned, received["error"], received["result"]

    returned, error, result = asyncio.run(scenario())

    assert returned is None
    assert isinstance(error, InvalidArgumentError)
    assert str(error) == "Must provide users or users_json"
    assert result is None
    assert calls == []


def test_import_users_prefers_users_json_over_path() -> None:
    opened: list[str] = []
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(202, json={"id": "job_import"})

    manager = _manager(handler, file_opener=lambda path: opened.append(path))
    asyncio.run(
        manager.import_users(
            {"connection_id": "con_1", "users": "/tmp/other.json", "users_json": '[{"email": "a@example.com"}]'}
        )
    )

    assert opened == []
    assert _multipart_parts(calls[0])["users"] == ("users.json", b'[{"email": "a@example.com"}]')


def test_import_users_rejects_error_status() -> None:
    manager = _manager(lambda request: httpx.Response(404, text="connection not found"))

    with pytest.raises(HttpError) as exc_info:
        asyncio.run(manager.import_users({"connection_id": "con_x", "users_json": "[]"}))

    error = exc_info.value
    assert error.status_code == 404
    assert error.status == 404
    assert error.method == "POST"
    assert error.text == "connection not found"
    assert str(error) == f"cannot POST {BASE_URL}/jobs/users-imports (404)"


def test_import_users_wraps_transport_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    manager = _manager(handler)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(manager.import_users({"connection_id": "con_1", "users_json": "[]"}))

    assert isinstance(exc_info.value.cause, httpx.ConnectError)
    assert exc_info.value.__cause__ is exc_info.value.cause


def test_build_users_import_form_defaults() -> None:
    form = build_users_import_form({"connection_id": "con_1", "users_json": "[]"})

    assert form.fields == {
        "connection_id": "con_1",
        "upsert": "false",
        "send_completion_email": "true",
    }
    assert form.files == {"users": ("users.json", b"[]")}


def test_operations_without_callback_return_awaitable() -> None:
    manager = _manager(lambda request: httpx.Response(200, json={"id": "job_abc"}))

    pending = manager.get({"id": "job_abc"})
    assert inspect.isawaitable(pending)
    assert asyncio.run(pending) == {"id": "job_abc"}


def test_callback_receives_result_and_returns_none() -> None:
    manager = _manager(lambda request: httpx.Response(201, json={"id": "job_export"}))

    async def scenario() -> tuple[Any, Any, Any]:
        settled = asyncio.Event()
        received: dict[str, Any] = {}

        def callback(error: Any, result: Any) -> None:
            received["error"] = error
            received["result"] = result
            settled.set()

        returned = manager.export_users({"format": "json"}, callback)
        await asyncio.wait_for(settled.wait(), timeout=5)
        return returned, received["error"], received["result"]

    returned, error, result = asyncio.run(scenario())

    assert returned is None
    assert error is None
    assert result == {"id": "job_export"}


def test_callback_receives_import_error() -> None:
    manager = _manager(lambda request: httpx.Response(500, text="boom"))

    async def scenario() -> tuple[Any, Any, Any]:
        settled = asyncio.Event()
        received: dict[str, Any] = {}

        def callback(error: Any, result: Any) -> None:
            received["error"] = error
            received["result"] = result
            settled.set()

        returned = manager.import_users({"connection_id": "con_1", "users_json": "[]"}, callback)
        await asyncio.wait_for(settled.wait(), timeout=5)
        return returned, received["error"], received["result"]

    returned, error, result = asyncio.run(scenario())

    assert returned is None
    assert isinstance(error, HttpError)
    assert error.status_code == 500
    assert result is None


def test_callback_mode_requires_running_loop() -> None:
    calls: list[httpx.Request] = []
    manager = _manager(lambda request: calls.append(request) or httpx.Response(200))

    with pytest.raises(RuntimeError):
        manager.get({"id": "job_abc"}, lambda error, result: None)
    assert calls == []


def test_validation_errors_are_raised_even_with_callback() -> None:
    manager = _manager(lambda request: httpx.Response(200))
    received: list[Any] = []

    with pytest.raises(InvalidArgumentError):
        manager.verify_email({}, lambda error, result: received.append(error))
    assert received == []
