# identity_bridge/bridge/clients.py
"""
Where the bridge learns about its OAuth client.

At startup the bridge checks that the configured client exists, is enabled,
allows direct (password) grants and carries the bridge scope. The facts come
from a ClientRegistry: a static one for tests and simple deployments, or the
identity platform's admin REST API.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

import httpx

logger = logging.getLogger(__name__)


class ClientRegistryError(Exception):
    """Raised when client metadata cannot be read from the identity platform."""


@dataclass(frozen=True)
class ClientDescriptor:
    client_id: str
    enabled: bool = True
    direct_access_grants_enabled: bool = False
    default_scopes: frozenset[str] = field(default_factory=frozenset)

    def has_default_scope(self, scope: str) -> bool:
        return scope in self.default_scopes


class ClientRegistry(Protocol):
    def get_client(self, client_id: str) -> ClientDescriptor | None: ...


class StaticClientRegistry:
    """Registry backed by descriptors supplied up front."""

    def __init__(self, clients: Iterable[ClientDescriptor] = ()) -> None:
        self._clients = {c.client_id: c for c in clients}

    def get_client(self, client_id: str) -> ClientDescriptor | None:
        return self._clients.get(client_id)


class AdminApiClientRegistry:
    """
    Registry reading clients from the identity platform's admin REST API.

    Authenticates with a client-credentials grant against the realm's token
    endpoint, then reads `/admin/realms/{realm}/clients?clientId=...` and the
    client's default client scopes.
    """

    def __init__(
        self,
        base_url: str,
        realm: str,
        admin_client_id: str,
        admin_client_secret: str,
        *,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._realm = realm
        self._admin_client_id = admin_client_id
        self._admin_client_secret = admin_client_secret
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings, http_client: httpx.Client | None = None) -> AdminApiClientRegistry:
        return cls(
            settings.AUTH_SERVER_URL,
            settings.REALM,
            settings.ADMIN_CLIENT_ID,
            settings.ADMIN_CLIENT_SECRET,
            timeout=settings.BRIDGE_HTTP_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    def get_client(self, client_id: str) -> ClientDescriptor | None:
        headers = {"Authorization": f"Bearer {self._admin_token()}"}
        clients_url = f"{self._base_url}/admin/realms/{self._realm}/clients"

        clients = self._get_json(clients_url, headers, params={"clientId": client_id})
        try:
            match = next((c for c in clients if c.get("clientId") == client_id), None)
            if match is None:
                return None
            internal_id = match["id"]
        except (AttributeError, KeyError, TypeError) as exc:
            raise ClientRegistryError(f"Malformed client representation for {client_id}") from exc

        scopes_url = f"{clients_url}/{internal_id}/default-client-scopes"
        scopes = self._get_json(scopes_url, headers)
        try:
            default_scopes = frozenset(s.get("name") for s in scopes if s.get("name"))
        except (AttributeError, TypeError) as exc:
            raise ClientRegistryError(f"Malformed default client scopes for {client_id}") from exc

        return ClientDescriptor(
            client_id=client_id,
            enabled=bool(match.get("enabled", False)),
            direct_access_grants_enabled=bool(match.get("directAccessGrantsEnabled", False)),
            default_scopes=default_scopes,
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def _admin_token(self) -> str:
        if not self._admin_client_id:
            raise ClientRegistryError("ADMIN_CLIENT_ID is not configured")

        token_url = f"{self._base_url}/realms/{self._realm}/protocol/openid-connect/token"
        data = {
            "grant_type": "client_credentials",
            "client_id": self._admin_client_id,
            "client_secret": self._admin_client_secret,
        }
        try:
            response = self._http.post(token_url, data=data)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ClientRegistryError("Unable to obtain an admin access token") from exc

        if not isinstance(payload, dict):
            raise ClientRegistryError("Admin token response is not a JSON object")
        token = payload.get("access_token")
        if not token:
            raise ClientRegistryError("Admin token response has no access_token")
        return token

    def _get_json(self, url: str, headers: dict[str, str], params: dict[str, str] | None = None) -> list[Any]:
        try:
            response = self._http.get(url, headers=headers, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ClientRegistryError(f"Admin API request failed: {url}") from exc

        if not isinstance(payload, list):
            raise ClientRegistryError(f"Unexpected admin API payload from {url}")
        return payload
