"""Defines the 'users' table with the SQLAlchemy ORM."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from .db import Base


class User(Base):
    """
    A registered account of the LCA tool.
    Holds credentials, the verification flag and the pending one-time password, if any.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Login name; unique and case-sensitive.
    username = Column(String(150), unique=True, index=True, nullable=False)

    # Not unique: several accounts may share one address.
    email = Column(String(255), index=True, nullable=False)

    # bcrypt digest, never the plain password.
    hashed_password = Column(String(255), nullable=False)

    is_verified = Column(Boolean, nullable=False, default=False)

    # Pending one-time password and its expiry (naive UTC). Both null when no OTP is pending.
    otp = Column(String(6), nullable=True)
    otp_expires = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
