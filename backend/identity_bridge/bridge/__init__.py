# identity_bridge/bridge/__init__.py
"""
Legacy login bridge.

This package contains:
- clients.py: Where the bridge's OAuth client is looked up and validated
- gateway.py: JSON credentials -> password grant -> legacy token document
"""
from identity_bridge.bridge.gateway import BridgeGateway, BridgeResponse, build_bridge_gateway

__all__ = ["BridgeGateway", "BridgeResponse", "build_bridge_gateway"]
