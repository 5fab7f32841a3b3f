from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FederatedUserOut(BaseModel):
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email_verified: bool = Field(default=False, alias="emailVerified")
    enabled: bool = True
    federation_link: str = Field(alias="federationLink")
    attributes: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class UserCountOut(BaseModel):
    count: int


def federated_user_out(user) -> FederatedUserOut:
    return FederatedUserOut(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        email_verified=user.email_verified,
        enabled=user.enabled,
        federation_link=user.federation_link,
        attributes=user.attributes(),
    )
