"""
Legacy role/subrole enum codes and their labels.

The legacy store persists both as integer enum codes. A missing or unknown
role falls back to DEFAULT_ROLE; a missing or unknown subrole has no label
and is left out of the projected attributes entirely.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

DEFAULT_ROLE = "is_client"

ROLE_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "0": "is_admin",
        "1": "is_client",
        "2": "is_fullfillment_client",
    }
)

SUBROLE_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "0": "operation_specialist",
        "1": "support",
        "2": "supervisor",
        "3": "operation_manager",
        "4": "super",
        "5": "driver",
        "6": "mover",
        "7": "god",
    }
)


def map_role(code: str | None) -> str:
    if not code:
        return DEFAULT_ROLE
    return ROLE_LABELS.get(code.strip(), DEFAULT_ROLE)


def map_subrole(code: str | None) -> str | None:
    if not code:
        return None
    return SUBROLE_LABELS.get(code.strip())
