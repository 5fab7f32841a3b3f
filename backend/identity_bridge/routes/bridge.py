# identity_bridge/routes/bridge.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from identity_bridge.bridge.gateway import BridgeGateway
from identity_bridge.dependencies.services import get_bridge_gateway

router = APIRouter(prefix="/bridge", tags=["bridge"])


@router.post("/token")
async def bridge_token(request: Request, gateway: BridgeGateway = Depends(get_bridge_gateway)):
    """
    Legacy login: `{"username", "password"}` in, combined token + user document out.

    The body is read raw so malformed JSON reaches the gateway and is answered
    with an OAuth `invalid_request` document instead of a framework 422.
    """
    raw_body = await request.body()
    result = await run_in_threadpool(gateway.exchange, raw_body)
    return Response(content=result.body, status_code=result.status_code, media_type=result.media_type)
