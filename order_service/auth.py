# order_service/auth.py

"""
Identity resolution: turns a bearer credential into a trusted Caller.
"""
import hashlib
import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .db import get_db
from .exceptions import Unauthenticated
from .models import Profile
from .policy import Caller

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def resolve_caller(db: Session, authorization: Optional[str]) -> Caller:
    if not authorization:
        raise Unauthenticated("Missing authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Invalid or expired token")

    profile = (
        db.query(Profile).filter(Profile.token_hash == hash_token(token.strip())).first()
    )
    if profile is None:
        logger.warning("Rejected request with an unknown bearer token.")
        raise Unauthenticated("Invalid or expired token")
    return Caller(id=profile.id, role=profile.role)


def get_current_caller(
    authorization: Optional[str] = Header(None), db: Session = Depends(get_db)
) -> Caller:
    """FastAPI dependency: the authenticated caller, or 401."""
    return resolve_caller(db, authorization)
