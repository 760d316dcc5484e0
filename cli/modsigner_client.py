"""Operator CLI for the mod signer dashboard."""

from __future__ import annotations

import argparse
import getpass
import os
import sys
from typing import Any
from urllib.parse import urlparse

import httpx

_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}
TOKEN_ENV_VAR = "MODSIGNER_TOKEN"


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


class AdminClient:
    """Thin wrapper over the dashboard's HTTP API."""

    def __init__(
        self,
        server_url: str,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.client = httpx.Client(base_url=self.server_url, timeout=30.0, transport=transport)
        if token:
            self.set_token(token)

    def set_token(self, token: str) -> None:
        self.client.headers["Authorization"] = f"Bearer {token}"

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> AdminClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def login(self, email: str, password: str) -> str:
        """Login, remember the access token and return it."""
        resp = self.client.post(
            "/api/auth/login",
            json={"email": email, "password": password},
        )
        resp.raise_for_status()
        token: str = resp.json()["access_token"]
        self.set_token(token)
        return token

    def trigger_sync(self) -> dict[str, Any]:
        resp = self.client.post("/api/admin/sync-mods")
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def sync_status(self) -> dict[str, Any]:
        resp = self.client.get("/api/admin/sync-status")
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def list_mods(self, outdated_only: bool = False) -> list[dict[str, Any]]:
        params = {"outdated": "true"} if outdated_only else {}
        resp = self.client.get("/api/mods", params=params)
        resp.raise_for_status()
        mods: list[dict[str, Any]] = resp.json()["mods"]
        return mods


def print_status(status: dict[str, Any]) -> None:
    print("Sync Status:")
    print(f"  Running:   {'yes' if status.get('running') else 'no'}")
    report = status.get("last_report")
    if report is None:
        print("  Last run:  never")
    else:
        print(f"  Last run:  {report['status']} (finished {report.get('finished_at') or '-'})")
        print(
            f"  Mods:      {report['mods_fetched']} fetched, {report['mods_deleted']} deleted, "
            f"{report['mods_changed']} changed, {report['mods_failed']} failed"
        )
        if report.get("error"):
            print(f"  Error:     {report['error']}")
    for job in status.get("scheduler", {}).get("jobs", []):
        print(f"  Next {job['name']}: {job.get('next_run_time') or '-'}")


def print_mods(mods: list[dict[str, Any]]) -> None:
    if not mods:
        print("No mods found.")
        return
    for mod in mods:
        signed = "signed" if mod.get("current_signed") else "unsigned"
        line = f"  [{mod['remote_id']}] {mod['name']}: {mod.get('current_version') or '-'} ({signed})"
        if mod.get("is_outdated"):
            line += f", newer upload {mod.get('latest_version')}"
        print(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modsigner-admin",
        description="Manage the mod signer dashboard from the command line",
    )
    parser.add_argument("--server", "-s", required=True, help="Server URL")
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )
    parser.add_argument("--email", "-e", help="Email for authentication")
    parser.add_argument(
        "--token",
        help=f"Access token for authentication (default: ${TOKEN_ENV_VAR})",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("login", help="Log in and print an access token")
    subparsers.add_parser("sync", help="Trigger a mod.io sync")
    subparsers.add_parser("status", help="Show sync status")
    mods_parser = subparsers.add_parser("mods", help="List mirrored mods")
    mods_parser.add_argument(
        "--outdated",
        action="store_true",
        help="Only show mods whose newest upload is not the current version",
    )
    return parser


def main(argv: list[str] | None = None, transport: httpx.BaseTransport | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    token = args.token or os.environ.get(TOKEN_ENV_VAR)
    with AdminClient(server_url, token, transport=transport) as client:
        if token is None or args.command == "login":
            email = args.email or input("Email: ")
            password = getpass.getpass("Password: ")
            try:
                token = client.login(email, password)
            except httpx.HTTPStatusError as exc:
                print(f"Error: Login failed ({exc.response.status_code})")
                sys.exit(1)

        try:
            if args.command == "login":
                print(token)
            elif args.command == "sync":
                result = client.trigger_sync()
                print(result["message"])
            elif args.command == "status":
                print_status(client.sync_status())
            elif args.command == "mods":
                print_mods(client.list_mods(outdated_only=args.outdated))
        except httpx.HTTPStatusError as exc:
            print(f"Error: Request failed ({exc.response.status_code})")
            sys.exit(1)
        except httpx.HTTPError as exc:
            print(f"Error: {exc}")
            sys.exit(1)


if __name__ == "__main__":
    main()
