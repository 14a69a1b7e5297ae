"""Tests for the sign-in session."""

import pytest

from health_dashboard.auth import (
    DEFAULT_SCOPES,
    AuthErrorCode,
    AuthSession,
    Credential,
    ProviderError,
    Scope,
)
from health_dashboard.identity import IdentityStore, MemoryKeyValueStore
from health_dashboard.models import PersonName, UserIdentity


class FakeProvider:
    """Identity provider returning a fixed credential or error."""

    def __init__(self, credential: Credential | None = None, error: Exception | None = None):
        self.credential = credential
        self.error = error
        self.requested_scopes: list[frozenset[Scope]] = []

    async def authorize(self, scopes):
        self.requested_scopes.append(scopes)
        if self.error:
            raise self.error
        return self.credential


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return IdentityStore(kv)


async def test_sign_in_persists_identity(store):
    provider = FakeProvider(
        Credential(user_id="u1", full_name=PersonName("Ann", "Lee"), email="a@example.com")
    )
    session = AuthSession(provider, store)

    result = await session.sign_in()

    assert result.success
    assert result.error is None
    assert result.identity == UserIdentity(
        id="u1", full_name=PersonName("Ann", "Lee"), email="a@example.com"
    )
    assert await session.load_persisted() == result.identity


async def test_sign_in_requests_name_and_email_by_default(store):
    provider = FakeProvider(Credential(user_id="u1"))

    await AuthSession(provider, store).sign_in()

    assert provider.requested_scopes == [DEFAULT_SCOPES]
    assert DEFAULT_SCOPES == {Scope.FULL_NAME, Scope.EMAIL}


async def test_repeat_sign_in_returns_persisted_details(store):
    first = FakeProvider(
        Credential(user_id="u1", full_name=PersonName("Ann", "Lee"), email="a@example.com")
    )
    await AuthSession(first, store).sign_in()

    result = await AuthSession(FakeProvider(Credential(user_id="u1")), store).sign_in()

    assert result.identity.display_name == "Ann Lee"
    assert result.identity.email == "a@example.com"


async def test_load_persisted_without_sign_in(store):
    session = AuthSession(FakeProvider(), store)

    identity = await session.load_persisted()

    assert identity.id is None
    assert identity.full_name is None
    assert identity.email is None


async def test_cancellation_maps_to_canceled(store, kv):
    provider = FakeProvider(error=ProviderError("user_cancelled_authorize", AuthErrorCode.CANCELED))

    result = await AuthSession(provider, store).sign_in()

    assert not result.success
    assert result.error.code == AuthErrorCode.CANCELED
    assert result.error.message == "Sign in with Apple was canceled."
    assert await kv.get("UserId") is None


@pytest.mark.parametrize(
    ("code", "message"),
    [
        (AuthErrorCode.FAILED, "Sign in with Apple failed."),
        (AuthErrorCode.INVALID_RESPONSE, "Sign in with Apple received an invalid response."),
        (AuthErrorCode.NOT_HANDLED, "Sign in with Apple not handled."),
        (AuthErrorCode.UNKNOWN, "An unknown error occurred with Sign in with Apple."),
    ],
)
async def test_provider_codes_map_to_messages(store, code, message):
    provider = FakeProvider(error=ProviderError("provider detail", code))

    result = await AuthSession(provider, store).sign_in()

    assert result.error.code == code
    assert result.error.message == message
    assert str(result.error) == message


async def test_uncoded_error_maps_to_other_with_detail(store):
    provider = FakeProvider(error=ProviderError("The network connection was lost."))

    result = await AuthSession(provider, store).sign_in()

    assert result.error.code == AuthErrorCode.OTHER
    assert result.error.message == "Sign in with Apple failed: The network connection was lost."


async def test_credential_without_user_id_is_invalid_response(store, kv):
    result = await AuthSession(FakeProvider(Credential(user_id="")), store).sign_in()

    assert result.error.code == AuthErrorCode.INVALID_RESPONSE
    assert await kv.get("UserId") is None


async def test_failed_sign_in_keeps_previous_identity(store):
    await AuthSession(FakeProvider(Credential(user_id="u1", email="a@example.com")), store).sign_in()

    failing = AuthSession(FakeProvider(error=ProviderError("nope", AuthErrorCode.FAILED)), store)
    result = await failing.sign_in()

    assert not result.success
    assert (await failing.load_persisted()).email == "a@example.com"


async def test_retry_after_failure_succeeds(store):
    provider = FakeProvider(error=ProviderError("nope", AuthErrorCode.FAILED))
    session = AuthSession(provider, store)
    assert not (await session.sign_in()).success

    provider.error = None
    provider.credential = Credential(user_id="u1")

    assert (await session.sign_in()).success
