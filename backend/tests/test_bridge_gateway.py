import json
from urllib.parse import parse_qs

import httpx
from jose import jwt

from identity_bridge.bridge.clients import ClientDescriptor, ClientRegistryError, StaticClientRegistry
from identity_bridge.bridge.gateway import (
    BridgeGateway,
    BridgeState,
    build_bridge_gateway,
    combine_token_response,
    extract_user_claims,
)
from identity_bridge.core.config import Settings

TOKEN_URL = "https://auth.example.test/realms/legacy/protocol/openid-connect/token"


def _id_token(**claims) -> str:
    payload = {"iss": "https://auth.example.test/realms/legacy", "aud": "bridge", "exp": 2_000_000_000}
    payload.update(claims)
    return jwt.encode(payload, "not-checked", algorithm="HS256")


def _token_response(**extra) -> dict:
    body = {
        "access_token": "access-123",
        "refresh_token": "refresh-456",
        "token_type": "Bearer",
        "expires_in": 300,
        "scope": "openid email profile",
    }
    body.update(extra)
    return body


def _ready_gateway(mock_http, **kwargs) -> BridgeGateway:
    return BridgeGateway(TOKEN_URL, "legacy-bridge", http_client=mock_http, **kwargs)


def _body(response) -> dict:
    return json.loads(response.body)


# -------------------------
# Pure transforms
# -------------------------
def test_combine_keeps_legacy_fields_and_nests_token():
    combined = combine_token_response(_token_response(), {"sub": "u-1"}, now=1_700_000_000.7)

    assert combined["access_token"] == "access-123"
    assert combined["refresh_token"] == "refresh-456"
    assert combined["token_type"] == "Bearer"
    assert combined["token"]["token"] == "access-123"
    assert "access_token" not in combined["token"]
    assert combined["token"]["refresh_token"] == "refresh-456"
    assert combined["token"]["created_at"] == 1_700_000_000
    assert combined["user"] == {"sub": "u-1"}


def test_combine_without_access_token():
    combined = combine_token_response({"token_type": "Bearer"}, {}, now=10)

    assert "token" not in combined["token"]
    assert combined["token"] == {"token_type": "Bearer", "created_at": 10}
    assert combined["user"] == {}


def test_extract_user_claims_filters_registered_claims():
    user = extract_user_claims(
        {
            "iss": "x",
            "aud": "y",
            "exp": 1,
            "iat": 1,
            "sid": "s",
            "sub": "u-1",
            "preferred_username": "a@example.com",
            "given_name": "Ann",
            "email": "a@example.com",
            "email_verified": True,
            "business_user": True,
            "orders": 3,
            "business_name": None,
            "tags": ["a", "b"],
        }
    )

    assert user == {
        "sub": "u-1",
        "preferred_username": "a@example.com",
        "given_name": "Ann",
        "email": "a@example.com",
        "email_verified": True,
        "business_user": True,
        "orders": 3,
        "business_name": None,
        "tags": "['a', 'b']",
    }


def test_extract_user_claims_email_verified_only_with_email():
    assert extract_user_claims({"sub": "u", "email_verified": True}) == {"sub": "u"}


# -------------------------
# Exchange
# -------------------------
def test_happy_path(mock_http):
    id_token = _id_token(sub="u-1", email="bridge-test@example.com", email_verified=True, confirmed=True)
    mock_http.recorder.handler = lambda request: httpx.Response(200, json=_token_response(id_token=id_token))

    response = _ready_gateway(mock_http).exchange(
        json.dumps({"username": "bridge-test@example.com", "password": "test-password"}).encode()
    )

    assert response.status_code == 200
    body = _body(response)
    assert body["user"]["sub"] == "u-1"
    assert body["user"]["confirmed"] is True
    assert "iss" not in body["user"]
    assert body["token"]["token"] == body["access_token"]
    assert body["token"]["id_token"] == id_token
    assert isinstance(body["token"]["created_at"], int)


def test_password_grant_form(mock_http):
    mock_http.recorder.handler = lambda request: httpx.Response(200, json=_token_response())

    _ready_gateway(mock_http, client_secret="s3cret").exchange(b'{"username": "u@example.com", "password": "p w"}')

    (request,) = mock_http.recorder.requests
    assert str(request.url) == TOKEN_URL
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
    assert form == {
        "grant_type": "password",
        "client_id": "legacy-bridge",
        "client_secret": "s3cret",
        "scope": "openid email profile",
        "username": "u@example.com",
        "password": "p w",
    }


def test_missing_id_token_gives_empty_user(mock_http):
    mock_http.recorder.handler = lambda request: httpx.Response(200, json=_token_response())

    body = _body(_ready_gateway(mock_http).exchange(b'{"username": "u", "password": "p"}'))

    assert body["user"] == {}
    assert body["token"]["token"] == "access-123"


def test_unparsable_id_token_gives_empty_user(mock_http):
    mock_http.recorder.handler = lambda request: httpx.Response(200, json=_token_response(id_token="garbage"))

    response = _ready_gateway(mock_http).exchange(b'{"username": "u", "password": "p"}')

    assert response.status_code == 200
    assert _body(response)["user"] == {}


def test_missing_password(mock_http):
    response = _ready_gateway(mock_http).exchange(b'{"username": "x"}')

    assert response.status_code == 400
    assert _body(response) == {"error": "invalid_request", "error_description": "Missing credentials"}
    assert mock_http.recorder.requests == []


def test_empty_strings_are_forwarded(mock_http):
    mock_http.recorder.handler = lambda request: httpx.Response(
        401, json={"error": "invalid_grant", "error_description": "Invalid user credentials"}
    )

    response = _ready_gateway(mock_http).exchange(b'{"username": "", "password": ""}')

    assert response.status_code == 401
    assert len(mock_http.recorder.requests) == 1


def test_invalid_json(mock_http):
    for raw in (b"{invalid-json}", b"", b"[1, 2]", b"\xff\xfe"):
        response = _ready_gateway(mock_http).exchange(raw)
        assert response.status_code == 400
        assert _body(response) == {"error": "invalid_request", "error_description": "Invalid JSON payload"}


def test_non_200_is_passed_through_verbatim(mock_http):
    upstream = b'{"error":"invalid_grant","error_description":"Invalid user credentials"}'
    mock_http.recorder.handler = lambda request: httpx.Response(
        401, content=upstream, headers={"content-type": "application/json"}
    )

    response = _ready_gateway(mock_http).exchange(b'{"username": "u", "password": "wrong"}')

    assert response.status_code == 401
    assert response.body == upstream


def test_unconfigured_gateway(mock_http):
    gateway = BridgeGateway(TOKEN_URL, None, http_client=mock_http)

    assert gateway.state is BridgeState.UNCONFIGURED
    response = gateway.exchange(b"{invalid-json}")
    assert response.status_code == 500
    assert _body(response) == {"error": "server_error", "error_description": "initialization error"}


def test_transport_error_is_server_error(mock_http):
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    mock_http.recorder.handler = boom

    response = _ready_gateway(mock_http).exchange(b'{"username": "u", "password": "p"}')

    assert response.status_code == 500
    assert _body(response) == {"error": "server_error", "error_description": "Internal server error"}


def test_unreadable_success_body_is_server_error(mock_http):
    mock_http.recorder.handler = lambda request: httpx.Response(200, content=b"<html>oops</html>")

    response = _ready_gateway(mock_http).exchange(b'{"username": "u", "password": "p"}')

    assert response.status_code == 500
    assert _body(response)["error"] == "server_error"


# -------------------------
# Startup validation
# -------------------------
def _settings(**overrides) -> Settings:
    base = {"BRIDGE_CLIENT_ID": "legacy-bridge", "AUTH_SERVER_URL": "https://auth.example.test", "REALM": "legacy"}
    base.update(overrides)
    return Settings(overrides=base)


def _registry(**descriptor) -> StaticClientRegistry:
    fields = {
        "client_id": "legacy-bridge",
        "enabled": True,
        "direct_access_grants_enabled": True,
        "default_scopes": frozenset({"bridge-legacy-auth", "profile"}),
    }
    fields.update(descriptor)
    return StaticClientRegistry([ClientDescriptor(**fields)])


def test_build_ready_gateway(mock_http):
    gateway = build_bridge_gateway(_settings(), _registry(), http_client=mock_http)

    assert gateway.state is BridgeState.READY
    assert gateway.client_id == "legacy-bridge"
    assert gateway.token_endpoint == TOKEN_URL


def test_missing_scope_only_warns(mock_http, caplog):
    gateway = build_bridge_gateway(_settings(), _registry(default_scopes=frozenset()), http_client=mock_http)

    assert gateway.state is BridgeState.READY
    assert "bridge-legacy-auth" in caplog.text


def test_misconfigurations_leave_gateway_unconfigured(mock_http):
    cases = [
        (_settings(BRIDGE_CLIENT_ID=""), _registry()),
        (_settings(), StaticClientRegistry()),
        (_settings(), _registry(enabled=False)),
        (_settings(), _registry(direct_access_grants_enabled=False)),
        (_settings(), None),
    ]
    for settings, registry in cases:
        gateway = build_bridge_gateway(settings, registry, http_client=mock_http)
        assert gateway.state is BridgeState.UNCONFIGURED


def test_registry_error_leaves_gateway_unconfigured(mock_http):
    class FailingRegistry:
        def get_client(self, client_id):
            raise ClientRegistryError("admin API down")

    gateway = build_bridge_gateway(_settings(), FailingRegistry(), http_client=mock_http)
    assert gateway.state is BridgeState.UNCONFIGURED
