"""Authentication schemas"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel


ActorRole = Literal["admin", "user"]


class TokenPayload(BaseModel):
    """JWT token payload"""
    sub: str  # Actor ID
    role: ActorRole
    exp: datetime
    type: str = "access"


class Actor(BaseModel):
    """Caller resolved from a bearer token"""
    id: str
    role: ActorRole
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
