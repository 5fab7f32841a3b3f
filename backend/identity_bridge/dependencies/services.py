# identity_bridge/dependencies/services.py
from __future__ import annotations

from fastapi import HTTPException, Request, status

from identity_bridge.bridge.gateway import BridgeGateway
from identity_bridge.federation.provider import FederationProvider


def get_bridge_gateway(request: Request) -> BridgeGateway:
    gateway = getattr(request.app.state, "bridge_gateway", None)
    if gateway is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bridge is not initialised")
    return gateway


def get_federation_provider(request: Request) -> FederationProvider:
    provider = getattr(request.app.state, "federation_provider", None)
    if provider is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Federation is not initialised")
    return provider
