"""
Command-line entry point.

    identity-bridge serve [--host 0.0.0.0 --port 8000] [flags]
    identity-bridge check-config [--check-connection] [flags]
    identity-bridge init-db

Flags take precedence over environment variables, which take precedence over
the documented defaults.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

from identity_bridge.core import config

logger = logging.getLogger(__name__)

# flag dest -> settings key
_OVERRIDE_KEYS = {
    "env": "ENV",
    "local_database_url": "LOCAL_DATABASE_URL",
    "external_db_url": "EXTERNAL_DB_URL",
    "users_table": "EXTERNAL_USERS_TABLE",
    "provider_id": "FEDERATION_PROVIDER_ID",
    "import_users": "FEDERATION_IMPORT_USERS",
    "auth_server_url": "AUTH_SERVER_URL",
    "realm": "REALM",
    "bridge_client_id": "BRIDGE_CLIENT_ID",
    "bridge_required_scope": "BRIDGE_REQUIRED_SCOPE",
}


def _add_config_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--env", choices=["dev", "prod"])
    parser.add_argument("--local-database-url")
    parser.add_argument("--external-db-url", help="SQLAlchemy URL of the legacy user store.")
    parser.add_argument("--users-table")
    parser.add_argument("--provider-id")
    parser.add_argument(
        "--import-users",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Import federated users into the local store on first login.",
    )
    parser.add_argument("--auth-server-url")
    parser.add_argument("--realm")
    parser.add_argument("--bridge-client-id")
    parser.add_argument("--bridge-required-scope")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="identity-bridge", description="Legacy identity federation and token bridge.")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    _add_config_flags(serve)

    check = sub.add_parser("check-config", help="Print the effective configuration.")
    check.add_argument("--check-connection", action="store_true", help="Also try the legacy user store.")
    _add_config_flags(check)

    init_db = sub.add_parser("init-db", help="Create the local identity tables.")
    _add_config_flags(init_db)

    return parser


def collect_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for dest, key in _OVERRIDE_KEYS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[key] = value
    return overrides


def _export_overrides(overrides: dict[str, Any]) -> config.Settings:
    """Push flag values into the environment so modules importing `settings` see them."""
    for key, value in overrides.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        os.environ[key] = str(value)
    config.settings = config.Settings()
    return config.settings


def cmd_check_config(args: argparse.Namespace) -> int:
    settings = config.Settings(overrides=collect_overrides(args))
    print(json.dumps(settings.summary(), indent=2))

    if not args.check_connection:
        return 0

    from identity_bridge.federation.gateway import ExternalUserGateway, UserTableMapping

    url = settings.external_database_url
    if not url:
        print("External user store is not configured.")
        return 1

    gateway = ExternalUserGateway.from_url(
        url,
        UserTableMapping.from_settings(settings),
        validation_query=settings.EXTERNAL_VALIDATION_QUERY,
    )
    try:
        ok = gateway.check_connection()
    finally:
        gateway.dispose()
    print("External user store: " + ("reachable" if ok else "UNREACHABLE"))
    return 0 if ok else 1


def cmd_init_db(args: argparse.Namespace) -> int:
    settings = _export_overrides(collect_overrides(args))

    from identity_bridge.core.base import Base
    from identity_bridge.core.database import build_engine
    import identity_bridge.models  # noqa: F401

    engine = build_engine(settings.LOCAL_DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    print("Local identity tables created.")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    _export_overrides(collect_overrides(args))

    import uvicorn

    uvicorn.run("identity_bridge.main:app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


_COMMANDS = {
    "serve": cmd_serve,
    "check-config": cmd_check_config,
    "init-db": cmd_init_db,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return _COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
