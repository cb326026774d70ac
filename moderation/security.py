from functools import lru_cache
from pathlib import Path

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jwt import ExpiredSignatureError, InvalidTokenError

from moderation.domain import Actor
from moderation.settings import settings

# Tokens are issued by the platform auth service; we only verify them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

BASE_DIR = Path(__file__).resolve().parent.parent


@lru_cache(maxsize=1)
def get_public_key() -> str:
    return (BASE_DIR / settings.JWT_PUBLIC_KEY_PATH).read_text()


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            get_public_key(),
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Wrong token type",
        )

    return payload


def actor_from_payload(payload: dict) -> Actor:
    return Actor(account_id=str(payload["sub"]), is_admin=payload.get("role") == "admin")


async def get_optional_actor(token: str | None = Depends(oauth2_scheme)) -> Actor | None:
    """The caller if a bearer token was sent, None for anonymous visitors."""
    if not token:
        return None
    return actor_from_payload(decode_access_token(token))


async def get_current_actor(actor: Actor | None = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor
