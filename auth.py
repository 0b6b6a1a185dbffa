import re
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import config
import models
from database import get_db
from errors import AuthenticationError

BEARER_PATTERN = re.compile(r"Bearer\s(\S+)")
RESET_PURPOSE = "password_reset"

pwd_context = CryptContext(
    # pbkdf2_sha256 has no 72-byte limit and no external C backend requirement
    schemes=["pbkdf2_sha256", "bcrypt_sha256", "bcrypt"],
    default="pbkdf2_sha256",
    deprecated="auto"
)

def hash_password(password: str) -> str:
    if password is None:
        raise ValueError("Password is required")
    return pwd_context.hash(password)

def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_session_token() -> str:
    return secrets.token_hex(32)


def create_reset_token(user_id: int):
    """Return a signed reset token and its expiry for ``user_id``."""
    expires_at = models.utcnow() + timedelta(seconds=config.RESET_TOKEN_EXPIRY_SECONDS)
    payload = {
        "sub": str(user_id),
        "purpose": RESET_PURPOSE,
        "exp": expires_at,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM), expires_at


def decode_reset_token(token: str) -> Optional[int]:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        return None
    if payload.get("purpose") != RESET_PURPOSE:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    match = BEARER_PATTERN.search(header)
    return match.group(1) if match else None


@dataclass
class AuthResult:
    user: Optional[models.User] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.user is not None


def authenticate(db: Session, authorization: Optional[str]) -> AuthResult:
    """Resolve an Authorization header to the owner of a live session."""
    token = extract_bearer_token(authorization)
    if token is None:
        return AuthResult(error="Authentication required")

    session = db.query(models.UserSession).filter(
        models.UserSession.token == token,
        models.UserSession.expires_at > models.utcnow()
    ).first()
    if session is None:
        return AuthResult(error="Invalid or expired token")
    return AuthResult(user=session.user)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> models.User:
    result = authenticate(db, request.headers.get("Authorization"))
    if not result.ok:
        raise AuthenticationError(result.error)
    return result.user
