"""CLI tools for fetching the health dashboard and managing the signed-in user."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .aggregator import DailyAggregator
from .apple_id import AppleIDProvider
from .auth import DEFAULT_SCOPES, AuthSession
from .config import get_settings
from .dashboard import HealthDashboard
from .formatter import format_identity, format_state, records_to_csv, records_to_json
from .identity import IdentityStore, SQLiteKeyValueStore
from .influx_source import InfluxHealthSource
from .logging import setup_logging
from .models import DateWindow
from .tracing import setup_tracing

VALID_FORMATS = {"text", "json", "csv"}


def _identity_store() -> IdentityStore:
    settings = get_settings()
    return IdentityStore(SQLiteKeyValueStore(Path(settings.identity.store_path)))


async def _fetch(days: int, fmt: str) -> int:
    """Run one dashboard refresh and print it. Returns the exit code."""
    settings = get_settings()
    setup_tracing(settings.tracing)

    tz = settings.dashboard.tzinfo
    source = InfluxHealthSource(settings.influxdb)
    await source.connect()
    try:
        dashboard = HealthDashboard(DailyAggregator(source, tz=tz))
        state = await dashboard.refresh(DateWindow.last_days(days, tz))
    finally:
        await source.disconnect()

    if state.status == "error":
        print(f"Error: {state.error_message}", file=sys.stderr)
        return 1

    if fmt == "json":
        print(records_to_json(state.records))
    elif fmt == "csv":
        print(records_to_csv(state.records), end="")
    else:
        print(format_state(state))
    return 0


def fetch_cli() -> None:
    """CLI entry point for fetching daily health data.

    Usage:
        health-fetch
        health-fetch --days 7 --format json
    """
    settings = get_settings()
    setup_logging(settings.app)

    parser = argparse.ArgumentParser(description="Fetch daily steps, distance and heart rate")
    parser.add_argument(
        "--days",
        type=int,
        default=settings.dashboard.history_days,
        help=f"Number of day buckets, ending today (default: {settings.dashboard.history_days})",
    )
    parser.add_argument(
        "--format",
        default="text",
        choices=sorted(VALID_FORMATS),
        help="Output format (default: text)",
    )
    args = parser.parse_args()

    if args.days < 1:
        print("Error: --days must be at least 1", file=sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(_fetch(args.days, args.format)))


async def _sign_in(callback: dict[str, str], expected_state: str | None) -> int:
    settings = get_settings()
    provider = AppleIDProvider(settings.apple, callback, expected_state=expected_state)
    session = AuthSession(provider, _identity_store())

    result = await session.sign_in(DEFAULT_SCOPES)
    if not result.success:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1

    print(format_identity(result.identity))
    return 0


def signin_cli() -> None:
    """CLI entry point completing Sign in with Apple from the redirect callback.

    Usage:
        health-signin --code c0de --state s1 --expected-state s1
        health-signin --code c0de --user '{"name": {"firstName": "Ann"}}'
        health-signin --error user_cancelled_authorize
    """
    settings = get_settings()
    setup_logging(settings.app)

    parser = argparse.ArgumentParser(description="Complete Sign in with Apple")
    parser.add_argument("--code", default=None, help="Authorization code from the callback")
    parser.add_argument(
        "--user", default=None, help="User JSON from the callback (first sign-in only)"
    )
    parser.add_argument("--error", default=None, help="Error code from the callback")
    parser.add_argument("--state", default=None, help="State value posted to the callback")
    parser.add_argument(
        "--expected-state",
        default=None,
        help="State issued with the authorization URL; the callback state must match it",
    )
    args = parser.parse_args()

    if args.user:
        try:
            json.loads(args.user)
        except json.JSONDecodeError as e:
            print(f"Error: --user is not valid JSON: {e}", file=sys.stderr)
            sys.exit(1)

    callback = {
        key: value
        for key, value in (
            ("code", args.code),
            ("user", args.user),
            ("error", args.error),
            ("state", args.state),
        )
        if value is not None
    }
    sys.exit(asyncio.run(_sign_in(callback, args.expected_state)))


def signin_url_cli() -> None:
    """CLI entry point printing the Sign in with Apple authorization URL."""
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Print the Sign in with Apple URL")
    parser.add_argument("--state", required=True, help="Opaque state echoed on the callback")
    parser.add_argument("--nonce", default=None, help="Nonce bound into the id_token")
    args = parser.parse_args()

    print(AppleIDProvider.authorization_url(settings.apple, DEFAULT_SCOPES, args.state, args.nonce))


def whoami_cli() -> None:
    """CLI entry point showing the persisted signed-in user."""
    settings = get_settings()
    setup_logging(settings.app)
    identity = asyncio.run(_identity_store().load())
    print(format_identity(identity))
