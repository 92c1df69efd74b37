from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from reviewflow.core.config import get_settings
from reviewflow.core.identity import ACTOR_TYPES, TEAM_MEMBER, Actor

settings = get_settings()


def create_access_token(
    actor_id: str,
    name: Optional[str] = None,
    actor_type: str = TEAM_MEMBER,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT identifying a reviewing party."""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(actor_id),
        "name": name,
        "actor_type": actor_type,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT. Returns its claims, or None if invalid."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if payload.get("sub") is None:
        return None
    if payload.get("actor_type", TEAM_MEMBER) not in ACTOR_TYPES:
        return None
    return payload


def actor_from_claims(
    claims: dict,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Actor:
    return Actor(
        id=claims["sub"],
        actor_type=claims.get("actor_type", TEAM_MEMBER),
        name=claims.get("name"),
        ip_address=ip_address,
        user_agent=user_agent,
    )
