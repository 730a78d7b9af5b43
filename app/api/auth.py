"""
Bearer token authentication.

Tokens are issued by the venue's identity service; this API only verifies
them and resolves the calling actor and role.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.schemas.auth import Actor, TokenPayload

# OAuth2 scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def create_access_token(actor_id: str, role: str, name: Optional[str] = None) -> str:
    """Create JWT access token"""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": actor_id,
        "role": role,
        "exp": expire,
        "type": "access",
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """Resolve the actor behind the bearer token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        claims = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
        payload = TokenPayload.model_validate(claims)
    except (JWTError, PydanticValidationError):
        raise credentials_exception

    if payload.type != "access":
        raise credentials_exception

    return Actor(id=payload.sub, role=payload.role, name=claims.get("name"))


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency for admin-only routes"""
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return actor
