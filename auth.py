import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import AuthenticationError, AuthorizationError, TokenInvalid
from models import AuthUser
from tokens import verify_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    id: str
    email: str


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Identity:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")
    try:
        claims = verify_token(credentials.credentials)
    except AuthenticationError as exc:
        logger.info(f"token_rejected: reason={exc.message}")
        raise

    user = db.get(AuthUser, claims["id"])
    if not user or not user.active:
        logger.info(f"token_rejected: reason=unknown_or_inactive user={claims['id']}")
        raise TokenInvalid()
    return Identity(id=user.id, email=user.email)


def require_self(user_id: str, identity: Identity) -> None:
    if user_id != identity.id:
        raise AuthorizationError("Unauthorized access")
