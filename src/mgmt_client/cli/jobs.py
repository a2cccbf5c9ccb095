from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping
from typing import Any

import httpx

from mgmt_client.errors import ManagementError
from mgmt_client.hooks.security import mask_sensitive_text
from mgmt_client.management.client import ManagementClient
from mgmt_client.models import ExportFormat, UserExportField


def _parse_export_field(raw: str) -> UserExportField:
    name, separator, export_as = raw.partition("=")
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"invalid field selector: {raw!r}")
    if not separator:
        return UserExportField(name=name)
    return UserExportField(name=name, export_as=export_as.strip() or None)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mgmt-jobs",
        description="Create and inspect management API jobs. Credentials come from MGMT_CLIENT_* env vars.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="Show a job by id.")
    get_parser.add_argument("job_id", help="Job id.")

    import_parser = subparsers.add_parser("import-users", help="Start a users import job.")
    import_parser.add_argument("--connection-id", required=True, help="Target connection id.")
    source = import_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--users", help="Path to the users file.")
    source.add_argument("--users-json", help="Users payload as a JSON string.")
    import_parser.add_argument(
        "--upsert",
        action="store_true",
        help="Update users that already exist.",
    )
    import_parser.add_argument(
        "--no-completion-email",
        action="store_true",
        help="Do not send the completion email.",
    )

    export_parser = subparsers.add_parser("export-users", help="Start a users export job.")
    export_parser.add_argument("--connection-id", help="Export only this connection.")
    export_parser.add_argument(
        "--format",
        choices=[item.value for item in ExportFormat],
        help="Export file format.",
    )
    export_parser.add_argument("--limit", type=int, help="Maximum number of users.")
    export_parser.add_argument(
        "--field",
        action="append",
        type=_parse_export_field,
        default=[],
        help="Field to export, as NAME or NAME=EXPORT_AS. Repeatable.",
    )

    verify_parser = subparsers.add_parser("verify-email", help="Send a verification email.")
    verify_parser.add_argument("user_id", help="User id.")
    return parser


def _export_payload(args: argparse.Namespace) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if args.connection_id:
        payload["connection_id"] = args.connection_id
    if args.format:
        payload["format"] = args.format
    if args.limit is not None:
        payload["limit"] = args.limit
    if args.field:
        payload["fields"] = [item.model_dump(exclude_none=True) for item in args.field]
    return payload


async def _dispatch(client: ManagementClient, args: argparse.Namespace) -> Any:
    if args.command == "get":
        return await client.get_job({"id": args.job_id})
    if args.command == "import-users":
        data: dict[str, Any] = {
            "connection_id": args.connection_id,
            "upsert": args.upsert,
            "send_completion_email": not args.no_completion_email,
        }
        if args.users_json:
            data["users_json"] = args.users_json
        else:
            data["users"] = args.users
        response = await client.import_users(data)
        return _response_payload(response)
    if args.command == "export-users":
        return await client.export_users(_export_payload(args))
    if args.command == "verify-email":
        return await client.send_email_verification({"user_id": args.user_id})
    raise RuntimeError(f"unsupported command: {args.command}")


def _response_payload(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def run(
    argv: list[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        client = ManagementClient.from_env(environ, transport=transport)
        result = asyncio.run(_dispatch(client, args))
    except (ManagementError, OSError) as exc:
        print(f"error: {mask_sensitive_text(str(exc))}", file=sys.stderr)
        return 1
    print(json.dumps(result, ensure_ascii=True, indent=2))
    return 0


def main() -> None:
    raise SystemExit(run())
