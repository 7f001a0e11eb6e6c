import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config, models
from .database import get_db
from .errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

DBDep = Annotated[Session, Depends(get_db)]


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as asserted by the identity provider."""

    id: str
    email: str
    full_name: Optional[str] = None

    @classmethod
    def from_user(cls, user: models.User) -> "Principal":
        return cls(id=user.id, email=user.email, full_name=user.full_name)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    payload = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload["exp"] = expire
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as e:
        raise Unauthorized("Invalid token") from e

    subject = payload.get("sub")
    email = payload.get("email")
    if not subject or not email:
        raise Unauthorized("Invalid token")
    return Principal(id=str(subject), email=email, full_name=payload.get("name"))


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise Unauthorized()
    return decode_access_token(credentials.credentials)


def ensure_profile(db: Session, principal: Principal) -> models.User:
    """Load the profile row for the principal, creating it on first sight."""
    user = db.get(models.User, principal.id)
    if user:
        return user

    user = models.User(
        id=principal.id,
        email=principal.email,
        full_name=principal.full_name,
        role="user",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # created concurrently by another request
        db.rollback()
        user = db.get(models.User, principal.id)
        if user is None:
            raise
    else:
        logger.info("Created profile for %s", principal.id)
    db.refresh(user)
    return user


def get_current_user(
    db: DBDep,
    principal: Principal = Depends(get_principal),
) -> models.User:
    return ensure_profile(db, principal)


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if not user.is_admin:
        raise Forbidden()
    return user


PrincipalDep = Annotated[Principal, Depends(get_principal)]
CurrentUser = Annotated[models.User, Depends(get_current_user)]
AdminUser = Annotated[models.User, Depends(require_admin)]
