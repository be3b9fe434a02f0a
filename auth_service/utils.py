"""Utilities for the auth service: password hashing, session tokens and one-time passwords."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from jose import JWTError, jwt
from passlib.context import CryptContext

from common.config import Settings, get_settings

logger = logging.getLogger(__name__)

OTP_LOWER_BOUND = 100000
OTP_UPPER_BOUND = 999999

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Checks a plain password against a stored bcrypt hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hashes a plain password with a fresh bcrypt salt."""
    return pwd_context.hash(password)


def utcnow() -> datetime:
    """Naive UTC 'now', comparable with the naive timestamps stored in the users table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- One-time passwords ---

def generate_otp() -> str:
    """Draws a 6-digit code uniformly from 100000-999999."""
    return str(OTP_LOWER_BOUND + secrets.randbelow(OTP_UPPER_BOUND - OTP_LOWER_BOUND + 1))


def otp_expiry(settings: Settings, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(minutes=settings.otp_expiration_minutes)


def is_otp_valid(stored_otp: Optional[str], stored_expires: Optional[datetime], code: str, now: datetime) -> bool:
    """
    A code is accepted only when it equals the stored one and the stored expiry is strictly
    in the future. Mismatch and expiry are deliberately reported the same way by callers.
    """
    if stored_otp is None or stored_expires is None:
        return False
    if not secrets.compare_digest(stored_otp.encode(), code.encode()):
        return False
    return stored_expires > now


# --- JWT session tokens ---

def create_access_token(data: Dict, settings: Settings, now: Optional[datetime] = None) -> str:
    """
    Issues a signed JWT with the given payload and an expiry claim.

    Args:
        data: payload to embed (e.g. {'sub': user_id}).
        settings: provides the signing key, algorithm and lifetime.
        now: issuance instant, defaults to the current time.

    Returns:
        The encoded token.
    """
    issued_at = now or datetime.now(timezone.utc)
    if issued_at.tzinfo is None:
        # Naive values are taken to be UTC, like utcnow()
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    else:
        issued_at = issued_at.astimezone(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.access_token_expire_minutes),
    })
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Optional[Dict]:
    """
    Decodes and validates a JWT.

    Returns:
        The payload if the signature is valid and the token has not expired, otherwise None.
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning(f"Token decoding failed: {e}")
        return None


# --- FastAPI security dependency ---

def get_current_user_id(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> int:
    """
    Resolves the user id from an `Authorization: Bearer <token>` header.
    Missing token -> 401; bad signature, expired or malformed payload -> 403.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Access token required")

    token_value = authorization.split(" ", 1)[1].strip()
    if not token_value:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Access token required")

    payload = decode_token(token_value, settings)
    if payload is None or "sub" not in payload:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Invalid token")

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        logger.warning(f"Token payload carries a non-numeric subject: {payload.get('sub')!r}")
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Invalid token")
