"""Sign in with Apple identity provider (web authorization-code flow)."""

import json
import time
from collections.abc import Mapping
from typing import Any

import httpx
import structlog
from jose import JWTError, jwt
from jose.exceptions import JOSEError

from .auth import AuthErrorCode, Credential, ProviderError, Scope
from .config import AppleIDSettings
from .models import PersonName

logger = structlog.get_logger(__name__)

APPLE_AUDIENCE = "https://appleid.apple.com"

# Client secrets may live up to six months; we mint short-lived ones per exchange.
CLIENT_SECRET_TTL_SECONDS = 300

# Errors delivered on the redirect callback
CALLBACK_ERRORS: dict[str, AuthErrorCode] = {
    "user_cancelled_authorize": AuthErrorCode.CANCELED,
    "popup_closed_by_user": AuthErrorCode.CANCELED,
    "user_trigger_new_signin_flow": AuthErrorCode.CANCELED,
}

# OAuth errors returned by the token endpoint
TOKEN_ERRORS: dict[str, AuthErrorCode] = {
    "invalid_grant": AuthErrorCode.FAILED,
    "invalid_client": AuthErrorCode.FAILED,
    "unauthorized_client": AuthErrorCode.FAILED,
    "invalid_request": AuthErrorCode.NOT_HANDLED,
    "unsupported_grant_type": AuthErrorCode.NOT_HANDLED,
    "invalid_scope": AuthErrorCode.NOT_HANDLED,
}


class AppleIDProvider:
    """Completes a Sign in with Apple authorization from its redirect callback.

    Apple posts ``code`` and ``state`` to the redirect URI, plus a one-time
    ``user`` JSON document with the name and email on the very first grant.
    The code is exchanged at the token endpoint for an ``id_token`` whose
    ``sub`` claim is the stable user identifier.
    """

    def __init__(
        self,
        settings: AppleIDSettings,
        callback: Mapping[str, str],
        expected_state: str | None = None,
        expected_nonce: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            settings: Client registration settings.
            callback: Form fields posted to the redirect URI.
            expected_state: State sent with the authorization request, if checked.
            expected_nonce: Nonce sent with the authorization request, if checked.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._settings = settings
        self._callback = callback
        self._expected_state = expected_state
        self._expected_nonce = expected_nonce
        self._transport = transport

    @staticmethod
    def authorization_url(
        settings: AppleIDSettings,
        scopes: frozenset[Scope],
        state: str,
        nonce: str | None = None,
    ) -> str:
        """Build the URL the user opens to start signing in."""
        params: dict[str, str] = {
            "client_id": settings.client_id,
            "redirect_uri": settings.redirect_uri,
            "response_type": "code",
            "state": state,
        }
        if scopes:
            # Apple only accepts scoped requests with form_post responses
            params["scope"] = " ".join(sorted(s.value for s in scopes))
            params["response_mode"] = "form_post"
        if nonce:
            params["nonce"] = nonce
        return str(httpx.URL(settings.authorize_url, params=params))

    def client_secret(self) -> str:
        """Configured client secret, or a freshly signed ES256 JWT."""
        if self._settings.client_secret:
            return self._settings.client_secret
        if not self._settings.private_key:
            raise ProviderError(
                "No Apple client secret or private key configured", AuthErrorCode.NOT_HANDLED
            )
        now = int(time.time())
        claims = {
            "iss": self._settings.team_id,
            "iat": now,
            "exp": now + CLIENT_SECRET_TTL_SECONDS,
            "aud": APPLE_AUDIENCE,
            "sub": self._settings.client_id,
        }
        try:
            return jwt.encode(
                claims,
                self._settings.private_key,
                algorithm="ES256",
                headers={"kid": self._settings.key_id},
            )
        except JOSEError as e:
            logger.error("apple_client_secret_signing_failed", error=str(e))
            raise ProviderError(
                f"Could not sign Apple client secret: {e}", AuthErrorCode.NOT_HANDLED
            ) from e

    async def authorize(self, scopes: frozenset[Scope]) -> Credential:
        """Turn the callback into a Credential, raising ProviderError on failure."""
        error = self._callback.get("error")
        if error:
            raise ProviderError(error, CALLBACK_ERRORS.get(error))

        if self._expected_state is not None and self._callback.get("state") != self._expected_state:
            raise ProviderError("Callback state does not match", AuthErrorCode.INVALID_RESPONSE)

        code = self._callback.get("code")
        if not code:
            raise ProviderError(
                "Callback carried no authorization code", AuthErrorCode.INVALID_RESPONSE
            )

        tokens = await self._exchange_code(code)
        claims = self._id_token_claims(tokens)

        user = self._parse_user(self._callback.get("user"))
        full_name = self._parse_name(user.get("name")) if Scope.FULL_NAME in scopes else None
        email = None
        if Scope.EMAIL in scopes:
            email = claims.get("email") or user.get("email")

        logger.info(
            "apple_authorization_complete",
            has_name=full_name is not None,
            has_email=email is not None,
        )
        return Credential(user_id=claims["sub"], full_name=full_name, email=email)

    async def _exchange_code(self, code: str) -> dict[str, Any]:
        data = {
            "client_id": self._settings.client_id,
            "client_secret": self.client_secret(),
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self._settings.redirect_uri,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self._settings.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.warning("apple_token_request_failed", error=str(e))
            raise ProviderError(f"Token request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("error"):
            error = str(payload["error"])
            logger.warning("apple_token_error", status=response.status_code, error=error)
            raise ProviderError(
                str(payload.get("error_description") or error), TOKEN_ERRORS.get(error)
            )
        if response.status_code >= 500:
            raise ProviderError(
                f"Token endpoint returned HTTP {response.status_code}", AuthErrorCode.UNKNOWN
            )
        if response.status_code >= 400:
            raise ProviderError(
                f"Token endpoint returned HTTP {response.status_code}", AuthErrorCode.FAILED
            )
        if not isinstance(payload, dict):
            raise ProviderError("Token response is not a JSON object", AuthErrorCode.INVALID_RESPONSE)
        return payload

    def _id_token_claims(self, tokens: dict[str, Any]) -> dict[str, Any]:
        # The id_token comes straight from Apple over TLS, so its signature is not re-checked
        id_token = tokens.get("id_token")
        if not isinstance(id_token, str) or not id_token:
            raise ProviderError("Token response has no id_token", AuthErrorCode.INVALID_RESPONSE)
        try:
            claims = jwt.get_unverified_claims(id_token)
        except JWTError as e:
            raise ProviderError(f"Malformed id_token: {e}", AuthErrorCode.INVALID_RESPONSE) from e

        if not claims.get("sub"):
            raise ProviderError("id_token has no subject", AuthErrorCode.INVALID_RESPONSE)
        audience = claims.get("aud")
        audiences = audience if isinstance(audience, list) else [audience]
        if self._settings.client_id and self._settings.client_id not in audiences:
            raise ProviderError("id_token audience mismatch", AuthErrorCode.INVALID_RESPONSE)
        if self._expected_nonce is not None and claims.get("nonce") != self._expected_nonce:
            raise ProviderError("id_token nonce mismatch", AuthErrorCode.INVALID_RESPONSE)
        return claims

    @staticmethod
    def _parse_user(raw: str | None) -> dict[str, Any]:
        """Parse the first-grant ``user`` document; later grants omit it."""
        if not raw:
            return {}
        try:
            user = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"Malformed user document: {e}", AuthErrorCode.INVALID_RESPONSE
            ) from e
        return user if isinstance(user, dict) else {}

    @staticmethod
    def _parse_name(name: Any) -> PersonName | None:
        if not isinstance(name, dict):
            return None
        given = name.get("firstName") or None
        family = name.get("lastName") or None
        if given is None and family is None:
            return None
        return PersonName(given=given, family=family)
