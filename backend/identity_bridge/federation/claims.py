# identity_bridge/federation/claims.py
"""
Projection of federated attributes into token claims.

Legacy clients expect a fixed set of lower snake_case claims. Each claim is
read from the matching FED_* attribute, coerced to its declared type, and
filled with a typed default when the attribute is absent:

    boolean -> false, integer -> 0, string -> null
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping

from identity_bridge.federation import records as f
from identity_bridge.federation.projection import namespaced
from identity_bridge.federation.records import parse_bool

logger = logging.getLogger(__name__)


class ClaimType(str, enum.Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"


ABSENT_VALUES: Mapping[ClaimType, Any] = {
    ClaimType.BOOLEAN: False,
    ClaimType.INTEGER: 0,
    ClaimType.STRING: None,
}


@dataclass(frozen=True)
class ClaimField:
    name: str
    claim_type: ClaimType = ClaimType.STRING

    @property
    def claim_name(self) -> str:
        return self.name.lower().replace("-", "_")

    @property
    def attribute_name(self) -> str:
        return namespaced(self.name)


CLAIM_FIELDS: tuple[ClaimField, ...] = (
    ClaimField(f.FIELD_ID),
    ClaimField(f.FIELD_BUSINESS_NAME),
    ClaimField(f.FIELD_BUSINESS_TYPE),
    ClaimField(f.FIELD_BUSINESS_USER, ClaimType.BOOLEAN),
    ClaimField(f.FIELD_CONFIRMED, ClaimType.BOOLEAN),
    ClaimField(f.FIELD_LEGACY, ClaimType.BOOLEAN),
    ClaimField(f.FIELD_PAYMENT_ISSUE, ClaimType.BOOLEAN),
    ClaimField(f.FIELD_PHONE_NUMBER),
    ClaimField(f.FIELD_USER_CODE),
    ClaimField(f.FIELD_CREATED_AT),
    ClaimField(f.FIELD_STRIPE_CUSTOMER_ID),
    ClaimField(f.FIELD_ROLE),
    ClaimField(f.FIELD_SUBROLE),
    ClaimField(f.FIELD_ORGANIZATION_ROLE),
    ClaimField(f.FIELD_ORGANIZATION_ROLE_ID),
    ClaimField(f.FIELD_ORGANIZATION_ID),
    ClaimField(f.FIELD_DRIVER_USER),
    ClaimField(f.FIELD_ORDERS, ClaimType.INTEGER),
    ClaimField(f.FIELD_CLOSETS, ClaimType.INTEGER),
)


def _coerce(raw: str, claim_type: ClaimType) -> Any:
    if claim_type is ClaimType.BOOLEAN:
        return parse_bool(raw)
    if claim_type is ClaimType.INTEGER:
        try:
            return int(raw.strip())
        except ValueError:
            logger.debug("Non-integer claim value ignored")
            return 0
    return raw


def _attribute_source(source: Any) -> Mapping[str, Any]:
    if source is None:
        return {}
    if isinstance(source, Mapping):
        return source
    if hasattr(source, "attribute_map"):
        return source.attribute_map()
    if hasattr(source, "attributes") and callable(source.attributes):
        return source.attributes()
    raise TypeError(f"Cannot read attributes from {type(source).__name__}")


def _first_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        if not value or value[0] is None:
            return None
        return str(value[0])
    return str(value)


class ClaimProjector:
    def __init__(self, fields: tuple[ClaimField, ...] = CLAIM_FIELDS) -> None:
        self._fields = fields

    @property
    def fields(self) -> tuple[ClaimField, ...]:
        return self._fields

    def project(self, source: Any) -> dict[str, Any]:
        """
        Build the claim dict for a federated identity.

        `source` may be anything exposing `attributes()` (a FederatedUser), a
        local user (`attribute_map()`), or a plain mapping of FED_* names to a
        value or list of values. Every declared claim is always present.
        """
        attributes = _attribute_source(source)
        claims: dict[str, Any] = {}

        for field in self._fields:
            raw = _first_value(attributes.get(field.attribute_name))
            if raw is None:
                claims[field.claim_name] = ABSENT_VALUES[field.claim_type]
            else:
                claims[field.claim_name] = _coerce(raw, field.claim_type)

        return claims

    def apply(self, claims: MutableMapping[str, Any], source: Any) -> MutableMapping[str, Any]:
        """Merge the projection into an existing token claim dict."""
        claims.update(self.project(source))
        return claims
