"""Tests for the command line entry points."""

import sys

import pytest

import health_dashboard.cli as cli
from health_dashboard.config import (
    AppleIDSettings,
    AppSettings,
    IdentitySettings,
    InfluxDBSettings,
    Settings,
)
from health_dashboard.identity import IdentityStore, SQLiteKeyValueStore
from health_dashboard.models import PersonName, UserIdentity


@pytest.fixture
def settings(tmp_path, monkeypatch):
    settings = Settings(
        influxdb=InfluxDBSettings(token="test-token"),
        apple=AppleIDSettings(
            client_id="com.example.health.web",
            redirect_uri="https://health.example.com/auth/callback",
        ),
        identity=IdentitySettings(store_path=str(tmp_path / "identity.db")),
        app=AppSettings(log_format="console"),
    )
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    return settings


def test_whoami_not_signed_in(settings, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["health-whoami"])

    cli.whoami_cli()

    assert capsys.readouterr().out.strip() == "Not signed in"


@pytest.mark.asyncio
async def test_identity_store_uses_configured_path(settings, tmp_path):
    store = IdentityStore(SQLiteKeyValueStore(tmp_path / "identity.db"))
    await store.save(UserIdentity(id="u1", full_name=PersonName("Ann", "Lee")))

    identity = await cli._identity_store().load()

    assert identity.display_name == "Ann Lee"


def test_signin_url(settings, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["health-signin-url", "--state", "s1"])

    cli.signin_url_cli()

    url = capsys.readouterr().out.strip()
    assert url.startswith("https://appleid.apple.com/auth/authorize?")
    assert "state=s1" in url
    assert "client_id=com.example.health.web" in url


def test_signin_rejects_malformed_user_json(settings, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["health-signin", "--code", "c0de", "--user", "{oops"])

    with pytest.raises(SystemExit) as exc_info:
        cli.signin_cli()

    assert exc_info.value.code == 1
    assert "--user is not valid JSON" in capsys.readouterr().err


def test_signin_cancellation_exits_nonzero(settings, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["health-signin", "--error", "user_cancelled_authorize"])

    with pytest.raises(SystemExit) as exc_info:
        cli.signin_cli()

    assert exc_info.value.code == 1
    assert "Sign in with Apple was canceled." in capsys.readouterr().err


def test_fetch_rejects_zero_days(settings, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["health-fetch", "--days", "0"])

    with pytest.raises(SystemExit) as exc_info:
        cli.fetch_cli()

    assert exc_info.value.code == 1
    assert "--days must be at least 1" in capsys.readouterr().err


def test_signin_rejects_callback_state_mismatch(settings, monkeypatch, capsys):
    monkeypatch.setattr(
        sys,
        "argv",
        ["health-signin", "--code", "c0de", "--state", "attacker", "--expected-state", "s1"],
    )

    with pytest.raises(SystemExit) as exc_info:
        cli.signin_cli()

    assert exc_info.value.code == 1
    assert "Sign in with Apple received an invalid response." in capsys.readouterr().err


def test_signin_rejects_missing_callback_state(settings, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["health-signin", "--code", "c0de", "--expected-state", "s1"])

    with pytest.raises(SystemExit) as exc_info:
        cli.signin_cli()

    assert exc_info.value.code == 1
    assert "invalid response" in capsys.readouterr().err


def test_signin_checks_callback_state_against_expected(settings, monkeypatch):
    seen = {}

    class RecordingProvider(cli.AppleIDProvider):
        def __init__(self, apple_settings, callback, expected_state=None, **kwargs):
            seen["callback_state"] = callback.get("state")
            seen["expected_state"] = expected_state
            super().__init__(apple_settings, callback, expected_state=expected_state, **kwargs)

    monkeypatch.setattr(cli, "AppleIDProvider", RecordingProvider)
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "health-signin",
            "--error",
            "user_cancelled_authorize",
            "--state",
            "cb",
            "--expected-state",
            "s1",
        ],
    )

    with pytest.raises(SystemExit):
        cli.signin_cli()

    assert seen == {"callback_state": "cb", "expected_state": "s1"}
