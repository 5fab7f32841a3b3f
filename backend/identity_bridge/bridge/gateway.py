# identity_bridge/bridge/gateway.py
"""
Legacy token bridge.

Legacy clients POST `{"username", "password"}` and expect one JSON document
holding both the token and the user. The bridge turns that request into an
OAuth2 password grant against the token endpoint, then reshapes the answer:

    {
      "access_token": ..., "refresh_token": ..., ...      # legacy top level
      "token": {...all token fields..., "token": <access token>, "created_at": <unix s>},
      "user": {...claims read from the id_token...}
    }

Non-200 answers from the token endpoint (e.g. 401 invalid_grant) are passed
through untouched. The gateway is validated once at startup; a misconfigured
gateway answers every request with a 500 "initialization error".
"""
from __future__ import annotations

import enum
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from identity_bridge.bridge.clients import ClientRegistry, ClientRegistryError
from identity_bridge.core.config import Settings

logger = logging.getLogger(__name__)

USERINFO_SCOPES = "openid email profile"
JSON_CONTENT_TYPE = "application/json"

# Top-level fields kept for clients that predate the nested "token" object
LEGACY_TOP_LEVEL_FIELDS = ("access_token", "refresh_token", "token_type", "expires_in", "scope")

STANDARD_USER_CLAIMS = ("sub", "preferred_username", "name", "given_name", "family_name")

# Registered JWT / OIDC bookkeeping claims; never copied into "user"
REGISTERED_CLAIMS = frozenset(
    {
        "iss",
        "aud",
        "exp",
        "iat",
        "auth_time",
        "nbf",
        "jti",
        "typ",
        "azp",
        "nonce",
        "session_state",
        "sid",
        "at_hash",
        "c_hash",
        "acr",
    }
)


# -------------------------
# Errors
# -------------------------
class BridgeError(Exception):
    """Base class for errors rendered as an OAuth error document."""

    status_code = 500
    error = "server_error"

    def __init__(self, description: str) -> None:
        super().__init__(description)
        self.description = description

    def to_response(self) -> BridgeResponse:
        return BridgeResponse.json(
            self.status_code,
            {"error": self.error, "error_description": self.description},
        )


class InvalidRequestError(BridgeError):
    """Malformed request body or missing fields."""

    status_code = 400
    error = "invalid_request"


class BridgeServerError(BridgeError):
    """Misconfiguration, unreachable token endpoint or an unreadable answer."""


# -------------------------
# Response
# -------------------------
@dataclass(frozen=True)
class BridgeResponse:
    status_code: int
    body: bytes
    media_type: str = JSON_CONTENT_TYPE

    @classmethod
    def json(cls, status_code: int, payload: Mapping[str, Any]) -> BridgeResponse:
        return cls(status_code, json.dumps(payload, separators=(",", ":")).encode("utf-8"))


class BridgeState(str, enum.Enum):
    READY = "ready"
    UNCONFIGURED = "unconfigured"


# -------------------------
# Pure transforms
# -------------------------
def extract_user_claims(id_token_claims: Mapping[str, Any]) -> dict[str, Any]:
    """Pick the user-facing claims out of a decoded id_token payload."""
    user: dict[str, Any] = {}

    for name in STANDARD_USER_CLAIMS:
        if id_token_claims.get(name) is not None:
            user[name] = id_token_claims[name]

    if id_token_claims.get("email") is not None:
        user["email"] = id_token_claims["email"]
        user["email_verified"] = bool(id_token_claims.get("email_verified", False))

    for name, value in id_token_claims.items():
        if name in user or name in REGISTERED_CLAIMS or name in STANDARD_USER_CLAIMS:
            continue
        if name in ("email", "email_verified"):
            continue
        if value is None or isinstance(value, (bool, int, str)):
            user[name] = value
        else:
            user[name] = str(value)

    return user


def combine_token_response(
    token_response: Mapping[str, Any],
    user_claims: Mapping[str, Any],
    now: float | None = None,
) -> dict[str, Any]:
    """Build the legacy response document from a token endpoint answer and user claims."""
    created_at = int(time.time() if now is None else now)

    token: dict[str, Any] = {k: v for k, v in token_response.items() if k != "access_token"}
    if "access_token" in token_response:
        token["token"] = token_response["access_token"]
    token["created_at"] = created_at

    combined: dict[str, Any] = {
        name: token_response[name] for name in LEGACY_TOP_LEVEL_FIELDS if name in token_response
    }
    combined["token"] = token
    combined["user"] = dict(user_claims)
    return combined


def _parse_credentials(raw_body: bytes) -> tuple[str, str]:
    try:
        payload = json.loads(raw_body or b"")
    except (ValueError, UnicodeDecodeError) as exc:
        logger.debug("Error parsing bridge request payload: %s", type(exc).__name__)
        raise InvalidRequestError("Invalid JSON payload") from exc

    if not isinstance(payload, dict):
        raise InvalidRequestError("Invalid JSON payload")

    username = payload.get("username")
    password = payload.get("password")
    if username is None or password is None:
        logger.warning("Missing username or password in bridge request")
        raise InvalidRequestError("Missing credentials")

    return str(username), str(password)


def _user_claims_from(token_response: Mapping[str, Any]) -> dict[str, Any]:
    id_token = token_response.get("id_token")
    if not id_token:
        return {}
    try:
        # The token was minted by the endpoint we just called; only its payload is read.
        return extract_user_claims(jwt.get_unverified_claims(id_token))
    except (JOSEError, ValueError, TypeError, AttributeError):
        logger.exception("Error extracting user info from ID token")
        return {}


# -------------------------
# Gateway
# -------------------------
class BridgeGateway:
    def __init__(
        self,
        token_endpoint: str,
        client_id: str | None,
        *,
        client_secret: str | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._token_endpoint = token_endpoint
        self._client_id = client_id or None
        self._client_secret = client_secret or None
        self._http = http_client or httpx.Client(timeout=timeout)

    @property
    def state(self) -> BridgeState:
        return BridgeState.READY if self._client_id else BridgeState.UNCONFIGURED

    @property
    def client_id(self) -> str | None:
        return self._client_id

    @property
    def token_endpoint(self) -> str:
        return self._token_endpoint

    def close(self) -> None:
        self._http.close()

    def exchange(self, raw_body: bytes) -> BridgeResponse:
        """Handle one bridge request. Never raises."""
        try:
            return self._exchange(raw_body)
        except BridgeError as exc:
            return exc.to_response()
        except Exception:
            logger.exception("Unexpected error processing bridge token request")
            return BridgeServerError("Internal server error").to_response()

    def _exchange(self, raw_body: bytes) -> BridgeResponse:
        if self.state is BridgeState.UNCONFIGURED:
            logger.error("Bridge endpoint is misconfigured: no valid client id")
            raise BridgeServerError("initialization error")

        username, password = _parse_credentials(raw_body)

        form = {
            "grant_type": "password",
            "client_id": self._client_id,
            "scope": USERINFO_SCOPES,
            "username": username,
            "password": password,
        }
        if self._client_secret:
            form["client_secret"] = self._client_secret

        logger.debug("Forwarding bridge token request to %s", self._token_endpoint)
        try:
            response = self._http.post(self._token_endpoint, data=form)
        except httpx.HTTPError as exc:
            logger.error("Token endpoint unreachable: %s", type(exc).__name__)
            raise BridgeServerError("Internal server error") from exc

        if response.status_code != 200:
            return BridgeResponse(
                response.status_code,
                response.content,
                response.headers.get("content-type", JSON_CONTENT_TYPE),
            )

        try:
            token_response = response.json()
        except ValueError as exc:
            logger.error("Token endpoint returned an unreadable 200 response")
            raise BridgeServerError("Internal server error") from exc

        if not isinstance(token_response, dict):
            logger.error("Token endpoint returned a non-object 200 response")
            raise BridgeServerError("Internal server error")

        combined = combine_token_response(token_response, _user_claims_from(token_response))
        return BridgeResponse.json(200, combined)


def build_bridge_gateway(
    settings: Settings,
    registry: ClientRegistry | None,
    http_client: httpx.Client | None = None,
) -> BridgeGateway:
    """
    Validate the bridge client once and build the gateway.

    Any failure is logged at error level and yields an UNCONFIGURED gateway;
    a missing bridge scope is only a warning.
    """
    client_id = _validated_client_id(settings, registry)
    return BridgeGateway(
        settings.token_endpoint_url,
        client_id,
        client_secret=settings.BRIDGE_CLIENT_SECRET,
        http_client=http_client,
        timeout=settings.BRIDGE_HTTP_TIMEOUT_SECONDS,
    )


def _validated_client_id(settings: Settings, registry: ClientRegistry | None) -> str | None:
    client_id = settings.BRIDGE_CLIENT_ID
    if not client_id:
        logger.error("Bridge endpoint is misconfigured: no client id specified")
        return None

    if registry is None:
        logger.error("Bridge endpoint is misconfigured: no client registry to validate %s", client_id)
        return None

    try:
        client = registry.get_client(client_id)
    except ClientRegistryError:
        logger.exception("Bridge endpoint is misconfigured: unable to read client %s", client_id)
        return None

    if client is None:
        logger.error("Bridge endpoint is misconfigured for realm %s, missing %s client", settings.REALM, client_id)
        return None

    if not client.enabled:
        logger.error("Bridge endpoint is misconfigured: client %s is disabled in realm %s", client_id, settings.REALM)
        return None

    if not client.direct_access_grants_enabled:
        logger.error("Bridge endpoint is misconfigured: client %s does not have direct grants enabled", client_id)
        return None

    if not client.has_default_scope(settings.BRIDGE_REQUIRED_SCOPE):
        logger.warning(
            "Client %s does not have the '%s' scope on its default scopes",
            client_id,
            settings.BRIDGE_REQUIRED_SCOPE,
        )

    logger.info("Bridge endpoint ready (client=%s)", client_id)
    return client_id
