"""Sign-in session driving one authorization attempt against an identity provider."""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog

from .identity import IdentityStore
from .metrics import SIGN_INS
from .models import PersonName, UserIdentity

logger = structlog.get_logger(__name__)


class Scope(str, Enum):
    """Identity fields a sign-in may request."""

    FULL_NAME = "name"
    EMAIL = "email"


DEFAULT_SCOPES = frozenset({Scope.FULL_NAME, Scope.EMAIL})


class AuthErrorCode(str, Enum):
    """Normalized sign-in failure codes."""

    CANCELED = "canceled"
    FAILED = "failed"
    INVALID_RESPONSE = "invalid_response"
    NOT_HANDLED = "not_handled"
    UNKNOWN = "unknown"
    OTHER = "other"


AUTH_ERROR_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.CANCELED: "Sign in with Apple was canceled.",
    AuthErrorCode.FAILED: "Sign in with Apple failed.",
    AuthErrorCode.INVALID_RESPONSE: "Sign in with Apple received an invalid response.",
    AuthErrorCode.NOT_HANDLED: "Sign in with Apple not handled.",
    AuthErrorCode.UNKNOWN: "An unknown error occurred with Sign in with Apple.",
}


class ProviderError(Exception):
    """Failure reported by an identity provider.

    ``code`` is None for errors outside the provider's fixed code set.
    """

    def __init__(self, message: str, code: AuthErrorCode | None = None) -> None:
        super().__init__(message)
        self.code = code


class AuthError(Exception):
    """User-facing sign-in failure."""

    def __init__(self, code: AuthErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    @classmethod
    def from_provider(cls, error: ProviderError) -> "AuthError":
        if error.code is None or error.code == AuthErrorCode.OTHER:
            return cls(AuthErrorCode.OTHER, f"Sign in with Apple failed: {error}")
        return cls(error.code, AUTH_ERROR_MESSAGES[error.code])


@dataclass(frozen=True)
class Credential:
    """Identity fields returned by a successful provider authorization."""

    user_id: str
    full_name: PersonName | None = None
    email: str | None = None


class IdentityProvider(Protocol):
    """External identity provider completing one authorization request."""

    async def authorize(self, scopes: frozenset[Scope]) -> Credential:
        """Return the granted credential or raise ProviderError."""
        ...


@dataclass(frozen=True)
class SignInResult:
    """Result of a sign-in attempt."""

    success: bool
    identity: UserIdentity | None = None
    error: AuthError | None = None


class AuthSession:
    """Runs sign-in attempts and persists the resulting identity."""

    def __init__(self, provider: IdentityProvider, store: IdentityStore) -> None:
        self._provider = provider
        self._store = store

    async def sign_in(self, scopes: frozenset[Scope] = DEFAULT_SCOPES) -> SignInResult:
        """Attempt a single sign-in. Failures are returned, never raised."""
        logger.info("sign_in_started", scopes=sorted(s.value for s in scopes))
        try:
            credential = await self._provider.authorize(scopes)
        except ProviderError as e:
            return self._failure(AuthError.from_provider(e))

        if not credential.user_id:
            return self._failure(
                AuthError(
                    AuthErrorCode.INVALID_RESPONSE,
                    AUTH_ERROR_MESSAGES[AuthErrorCode.INVALID_RESPONSE],
                )
            )

        identity = await self._store.save(
            UserIdentity(
                id=credential.user_id,
                full_name=credential.full_name,
                email=credential.email,
            )
        )
        SIGN_INS.labels(outcome="success").inc()
        logger.info("sign_in_succeeded", first_grant=credential.email is not None)
        return SignInResult(success=True, identity=identity)

    async def load_persisted(self) -> UserIdentity:
        """Identity saved by a previous sign-in; fields may be None."""
        return await self._store.load()

    def _failure(self, error: AuthError) -> SignInResult:
        SIGN_INS.labels(outcome=error.code.value).inc()
        if error.code == AuthErrorCode.CANCELED:
            logger.info("sign_in_canceled")
        else:
            logger.warning("sign_in_failed", code=error.code.value, error=error.message)
        return SignInResult(success=False, error=error)
