# identity_bridge/routes/federation.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from identity_bridge.federation.provider import FederationProvider
from identity_bridge.dependencies.services import get_federation_provider
from identity_bridge.schemas.federation import FederatedUserOut, UserCountOut, federated_user_out

router = APIRouter(prefix="/federation", tags=["federation"])


@router.get("/users", response_model=list[FederatedUserOut])
def search_users(
    search: Optional[str] = Query(default=None),
    username: Optional[str] = Query(default=None),
    email: Optional[str] = Query(default=None),
    first_name: Optional[str] = Query(default=None, alias="firstName"),
    last_name: Optional[str] = Query(default=None, alias="lastName"),
    first: int = Query(default=0, ge=0),
    max_results: Optional[int] = Query(default=None, alias="max", ge=0),
    provider: FederationProvider = Depends(get_federation_provider),
):
    params = {
        "search": search,
        "username": username,
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
    }
    users = provider.search(params, offset=first, limit=max_results)
    return [federated_user_out(u) for u in users]


@router.get("/users/count", response_model=UserCountOut)
def count_users(provider: FederationProvider = Depends(get_federation_provider)):
    return UserCountOut(count=provider.count())


@router.get("/users/{user_id}", response_model=FederatedUserOut)
def get_user(user_id: str, provider: FederationProvider = Depends(get_federation_provider)):
    user = provider.lookup_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return federated_user_out(user)
