# identity_bridge/federation/__init__.py
"""
Federation of the legacy user store.

This package contains:
- records.py: Typed projection of one legacy user row
- gateway.py: Read-only SQL access to the legacy user table
- projection.py: Read-only identity view (FED_* attributes, role labels)
- reconciler.py: First-login import into the local identity store
- claims.py: Token claims for legacy clients
- provider.py: Lookup/search/credential contract used by the identity platform
"""
from identity_bridge.federation.claims import ClaimProjector
from identity_bridge.federation.gateway import ExternalUserGateway
from identity_bridge.federation.projection import FederatedUser, ReadOnlyIdentityError
from identity_bridge.federation.provider import FederationProvider
from identity_bridge.federation.reconciler import ImportOutcome, ImportReconciler, ImportStatus
from identity_bridge.federation.records import ExternalUserRecord

__all__ = [
    "ClaimProjector",
    "ExternalUserGateway",
    "ExternalUserRecord",
    "FederatedUser",
    "FederationProvider",
    "ImportOutcome",
    "ImportReconciler",
    "ImportStatus",
    "ReadOnlyIdentityError",
]
