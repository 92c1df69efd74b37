from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from reviewflow.db.session import SessionLocal
from reviewflow.core.identity import Actor
from reviewflow.core.review.service import ReviewService
from reviewflow.core.security import actor_from_claims, decode_token
from reviewflow.api.middleware.request_context import get_client_ip

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """Resolve the acting party from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or not credentials.credentials:
        raise credentials_exception

    claims = decode_token(credentials.credentials)
    if claims is None:
        raise credentials_exception

    return actor_from_claims(
        claims,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService(db)
