# identity_bridge/core/config.py
import os
from typing import Any, Mapping
from urllib.parse import quote_plus

from dotenv import load_dotenv


DEFAULT_USERS_TABLE = "users"
DEFAULT_ID_FIELD = "id"
DEFAULT_EMAIL_FIELD = "email"
DEFAULT_PASSWORD_FIELD = "password_digest"
DEFAULT_FIRSTNAME_FIELD = "first_name"
DEFAULT_LASTNAME_FIELD = "last_name"
DEFAULT_VALIDATION_QUERY = "SELECT 1"

DEFAULT_PROVIDER_ID = "postgresql-user-storage"
DEFAULT_REQUIRED_SCOPE = "bridge-legacy-auth"


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in items:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


class Settings:
    """
    Process configuration.

    Resolution order for every key: explicit override (command-line flag) ->
    environment variable -> documented default. Some bridge keys also accept the
    identity platform's SPI variable names as a second environment fallback.
    """

    def __init__(self, overrides: Mapping[str, Any] | None = None) -> None:
        self._overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

        # Only load .env for local/dev.
        self.ENV = self._get("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            load_dotenv()

        # ----------------------------
        # Local identity store
        # ----------------------------
        self.LOCAL_DATABASE_URL = self._get("LOCAL_DATABASE_URL", "sqlite:///./identity_bridge.db")

        # ----------------------------
        # External (legacy) user store
        # ----------------------------
        self.EXTERNAL_DB_URL = self._get("EXTERNAL_DB_URL", "")
        self.EXTERNAL_DB_HOST = self._get("EXTERNAL_DB_HOST", "")
        self.EXTERNAL_DB_PORT = self._get("EXTERNAL_DB_PORT", "5432")
        self.EXTERNAL_DB_NAME = self._get("EXTERNAL_DB_NAME", "")
        self.EXTERNAL_DB_USER = self._get("EXTERNAL_DB_USER", "")
        self.EXTERNAL_DB_PASSWORD = self._get("EXTERNAL_DB_PASSWORD", "")
        self.EXTERNAL_DB_SSLMODE = self._get("EXTERNAL_DB_SSLMODE", "prefer").strip().lower()

        self.EXTERNAL_USERS_TABLE = self._get("EXTERNAL_USERS_TABLE", DEFAULT_USERS_TABLE) or DEFAULT_USERS_TABLE
        self.EXTERNAL_ID_FIELD = self._get("EXTERNAL_ID_FIELD", DEFAULT_ID_FIELD) or DEFAULT_ID_FIELD
        self.EXTERNAL_EMAIL_FIELD = self._get("EXTERNAL_EMAIL_FIELD", DEFAULT_EMAIL_FIELD) or DEFAULT_EMAIL_FIELD
        self.EXTERNAL_PASSWORD_FIELD = (
            self._get("EXTERNAL_PASSWORD_FIELD", DEFAULT_PASSWORD_FIELD) or DEFAULT_PASSWORD_FIELD
        )
        self.EXTERNAL_FIRSTNAME_FIELD = (
            self._get("EXTERNAL_FIRSTNAME_FIELD", DEFAULT_FIRSTNAME_FIELD) or DEFAULT_FIRSTNAME_FIELD
        )
        self.EXTERNAL_LASTNAME_FIELD = (
            self._get("EXTERNAL_LASTNAME_FIELD", DEFAULT_LASTNAME_FIELD) or DEFAULT_LASTNAME_FIELD
        )
        self.EXTERNAL_VALIDATION_QUERY = (
            self._get("EXTERNAL_VALIDATION_QUERY", DEFAULT_VALIDATION_QUERY) or DEFAULT_VALIDATION_QUERY
        )

        # ----------------------------
        # Federation behaviour
        # ----------------------------
        self.FEDERATION_PROVIDER_ID = self._get("FEDERATION_PROVIDER_ID", DEFAULT_PROVIDER_ID)
        self.FEDERATION_IMPORT_USERS = self._get_bool("FEDERATION_IMPORT_USERS", default=True)
        # Pending actions the local store attaches to every new account (cleared on import).
        self.DEFAULT_REQUIRED_ACTIONS = parse_csv(self._get("DEFAULT_REQUIRED_ACTIONS", ""))

        # ----------------------------
        # Bridge / token issuance
        # ----------------------------
        self.AUTH_SERVER_URL = self._get("AUTH_SERVER_URL", "http://localhost:8080").strip().rstrip("/")
        self.REALM = self._get("REALM", "master").strip()
        self.BRIDGE_TOKEN_ENDPOINT = self._get("BRIDGE_TOKEN_ENDPOINT", "").strip()
        self.BRIDGE_CLIENT_ID = self._get("BRIDGE_CLIENT_ID", "", fallback_env="KC_SPI_BRIDGE_CLIENT_ID").strip()
        self.BRIDGE_CLIENT_SECRET = self._get("BRIDGE_CLIENT_SECRET", "")
        self.BRIDGE_REQUIRED_SCOPE = (
            self._get("BRIDGE_REQUIRED_SCOPE", "", fallback_env="KC_SPI_BRIDGE_REQUIRED_SCOPE").strip()
            or DEFAULT_REQUIRED_SCOPE
        )
        self.BRIDGE_HTTP_TIMEOUT_SECONDS = float(self._get("BRIDGE_HTTP_TIMEOUT_SECONDS", "10"))

        # Admin API credentials, used only to validate the bridge client at startup.
        self.ADMIN_CLIENT_ID = self._get("ADMIN_CLIENT_ID", "")
        self.ADMIN_CLIENT_SECRET = self._get("ADMIN_CLIENT_SECRET", "")

        # ----------------------------
        # CORS
        # ----------------------------
        dev_defaults = [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
        cors_from_env = parse_csv(self._get("CORS_ORIGINS", ""))
        if self.ENV == "prod":
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            self.CORS_ORIGINS = merge_unique(cors_from_env + dev_defaults)

        # Final: fail fast in prod
        self._validate_prod()

    def _get(self, key: str, default: str = "", *, fallback_env: str | None = None) -> str:
        if key in self._overrides:
            return str(self._overrides[key])
        value = os.getenv(key)
        if (value is None or value == "") and fallback_env:
            value = os.getenv(fallback_env)
        if value is None:
            return default
        return value

    def _get_bool(self, key: str, default: bool = False) -> bool:
        if key in self._overrides and isinstance(self._overrides[key], bool):
            return self._overrides[key]
        raw = self._get(key, "")
        return str_to_bool(raw or None, default=default)

    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        missing: list[str] = []

        if not self.LOCAL_DATABASE_URL or self.LOCAL_DATABASE_URL.startswith("sqlite"):
            missing.append("LOCAL_DATABASE_URL")
        if not self.external_database_url:
            missing.append("EXTERNAL_DB_URL")
        if not self.AUTH_SERVER_URL.startswith("https://") and not self.BRIDGE_TOKEN_ENDPOINT:
            raise RuntimeError("AUTH_SERVER_URL should be https://... in prod")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    @property
    def external_database_url(self) -> str:
        if self.EXTERNAL_DB_URL:
            return self.EXTERNAL_DB_URL
        if not (self.EXTERNAL_DB_HOST and self.EXTERNAL_DB_NAME):
            return ""
        encoded_password = quote_plus(self.EXTERNAL_DB_PASSWORD)
        return (
            f"postgresql+psycopg2://{self.EXTERNAL_DB_USER}:{encoded_password}"
            f"@{self.EXTERNAL_DB_HOST}:{self.EXTERNAL_DB_PORT}/{self.EXTERNAL_DB_NAME}"
            f"?sslmode={self.EXTERNAL_DB_SSLMODE}"
        )

    @property
    def token_endpoint_url(self) -> str:
        if self.BRIDGE_TOKEN_ENDPOINT:
            return self.BRIDGE_TOKEN_ENDPOINT
        return f"{self.AUTH_SERVER_URL}/realms/{self.REALM}/protocol/openid-connect/token"

    def summary(self) -> dict[str, Any]:
        """Non-secret view of the effective configuration, for startup logs and `check-config`."""
        return {
            "env": self.ENV,
            "external_db_configured": bool(self.external_database_url),
            "users_table": self.EXTERNAL_USERS_TABLE,
            "provider_id": self.FEDERATION_PROVIDER_ID,
            "import_users": self.FEDERATION_IMPORT_USERS,
            "token_endpoint": self.token_endpoint_url,
            "bridge_client_id": self.BRIDGE_CLIENT_ID or None,
            "bridge_required_scope": self.BRIDGE_REQUIRED_SCOPE,
        }


settings = Settings()
