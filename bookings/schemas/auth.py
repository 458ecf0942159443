"""
Identity of the caller, decoded from the bearer token issued by the auth service.
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class UserRole(str, Enum):
    """Roles carried in the token's role claim."""
    ADMIN = "admin"
    USER = "user"


class Identity(BaseModel):
    """Caller identity passed explicitly into every booking operation."""

    user_id: int = Field(..., gt=0, description="Authenticated user ID")
    role: UserRole = Field(UserRole.USER, description="Authenticated user role")
    client_ip: Optional[str] = Field(None, description="Client IP address, for auditing")
    user_agent: Optional[str] = Field(None, description="Client user agent, for auditing")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
