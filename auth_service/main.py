"""Authentication endpoints: registration, OTP verification, login and password reset."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from common.config import Settings, get_settings
from . import schemas
from .db import Base, engine, get_db
from .mailer import OTPMailer, get_mailer
from .models import User
from .utils import (
    create_access_token,
    generate_otp,
    get_current_user_id,
    get_password_hash,
    is_otp_valid,
    otp_expiry,
    utcnow,
    verify_password,
)

logger = logging.getLogger(__name__)

INVALID_OTP = "Invalid or expired OTP"

# Create tables on startup if they do not exist
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified/created.")
except Exception as e:
    logger.error(f"Error initializing database: {e}", exc_info=True)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"User with ID {user_id} not found.")
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    return user


def _first_user_by_email(db: Session, email: str):
    # Emails are not unique: the oldest account with this address wins.
    return db.query(User).filter(User.email == email).order_by(User.id).first()


def _commit(db: Session, user: User, action: str) -> None:
    try:
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while trying to {action} for user {user.id}: {e}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Could not {action}.")


def _create_user(db: Session, user_in: schemas.UserCreate, settings: Settings) -> User:
    """Store work for registration; runs in the threadpool (bcrypt and the queries block)."""
    if db.query(User).filter(User.username == user_in.username).first():
        logger.warning(f"Registration failed: username {user_in.username} already exists.")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username already exists")

    new_user = User(
        username=user_in.username,
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
        is_verified=False,
        otp=generate_otp(),
        otp_expires=otp_expiry(settings, utcnow()),
    )

    try:
        db.add(new_user)
        db.commit()
        db.refresh(new_user)
        logger.info(f"User created with ID: {new_user.id} for username: {user_in.username}")
    except IntegrityError:
        # Lost a race against a concurrent registration of the same username.
        db.rollback()
        logger.warning(f"Registration failed: username {user_in.username} was taken concurrently.")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error during user creation for {user_in.username}: {e}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Could not save user.")

    return new_user


def _store_new_otp(db: Session, user: User, settings: Settings, action: str) -> None:
    user.otp = generate_otp()
    user.otp_expires = otp_expiry(settings, utcnow())
    _commit(db, user, action)


def _prepare_resend(db: Session, user_id: int, settings: Settings) -> User:
    user = _get_user_or_404(db, user_id)
    if user.is_verified:
        logger.warning(f"OTP resend refused: user {user.id} is already verified.")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Account already verified")
    _store_new_otp(db, user, settings, "save the new OTP")
    return user


def _prepare_reset_code(db: Session, email: str, settings: Settings) -> User:
    user = _first_user_by_email(db, email)
    if not user:
        logger.warning(f"Password reset failed: email {email} not found.")
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Email not found")
    _store_new_otp(db, user, settings, "save the reset code")
    return user


@router.post("/register", response_model=schemas.UserIdResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_in: schemas.UserCreate,
    db: Session = Depends(get_db),
    mailer: OTPMailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    """
    Registers a new, unverified user and emails a one-time password.
    Only the username has to be unique; the email may already belong to other accounts.
    """
    logger.info(f"Registration attempt for username: {user_in.username}")
    new_user = await run_in_threadpool(_create_user, db, user_in, settings)

    # The user stays created even if the email fails; they can ask for a new code.
    if not await mailer.send_otp(new_user.email, new_user.otp):
        logger.warning(f"User {new_user.id} created, but the OTP email could not be sent.")

    return {"message": "Registered successfully, OTP sent!", "userId": new_user.id}


@router.post("/verify-otp", response_model=schemas.MessageResponse)
def verify_otp(data: schemas.OTPVerification, db: Session = Depends(get_db)):
    """Marks the account as verified when the code matches and has not expired."""
    logger.info(f"OTP verification attempt for user {data.user_id}")
    user = _get_user_or_404(db, data.user_id)

    if not is_otp_valid(user.otp, user.otp_expires, data.otp, utcnow()):
        logger.warning(f"OTP verification failed for user {user.id}")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, INVALID_OTP)

    user.otp = None
    user.otp_expires = None
    user.is_verified = True
    _commit(db, user, "verify the account")
    logger.info(f"User {user.id} marked as verified.")

    return {"message": "OTP verified successfully!"}


@router.post("/resend-otp", response_model=schemas.MessageResponse)
async def resend_otp(
    data: schemas.ResendOTPRequest,
    db: Session = Depends(get_db),
    mailer: OTPMailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    """Issues a fresh code for an account that has not been verified yet."""
    logger.info(f"OTP resend request for user {data.user_id}")
    user = await run_in_threadpool(_prepare_resend, db, data.user_id, settings)

    if not await mailer.send_otp(user.email, user.otp):
        logger.error(f"OTP resend email failed for user {user.id}")
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Could not send the OTP email. Please try again.")

    return {"message": "OTP sent to email"}


@router.post("/login", response_model=schemas.LoginResponse)
def login(
    credentials: schemas.LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Authenticates with username or email plus password and returns a 1-day session token.
    """
    if credentials.username:
        identifier = credentials.username
        user = db.query(User).filter(User.username == credentials.username).first()
    elif credentials.email:
        identifier = credentials.email
        user = _first_user_by_email(db, credentials.email)
    else:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username or email is required")

    logger.info(f"Login attempt for: {identifier}")
    if not user:
        logger.warning(f"Login failed: no user for {identifier}")
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    if not user.is_verified:
        logger.warning(f"Login refused: user {user.id} is not verified.")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Please verify your account before logging in")

    if not verify_password(credentials.password, user.hashed_password):
        logger.warning(f"Login failed: wrong password for user {user.id}")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid credentials")

    token = create_access_token({"sub": str(user.id)}, settings)
    logger.info(f"Login successful for user_id: {user.id}")

    return {"message": "Login successful", "token": token, "user": schemas.UserSummary.model_validate(user)}


@router.post("/forgot-password", response_model=schemas.UserIdResponse)
async def forgot_password(
    data: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
    mailer: OTPMailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    """Emails a password-reset code to the first account registered with this address."""
    logger.info(f"Password reset requested for email: {data.email}")
    user = await run_in_threadpool(_prepare_reset_code, db, data.email, settings)

    if not await mailer.send_otp(user.email, user.otp):
        logger.warning(f"Reset code stored for user {user.id}, but the email could not be sent.")

    return {"message": "OTP sent to email", "userId": user.id}


@router.post("/reset-password", response_model=schemas.MessageResponse)
def reset_password(data: schemas.ResetPasswordRequest, db: Session = Depends(get_db)):
    """Replaces the password when the reset code matches and has not expired."""
    logger.info(f"Password reset attempt for user {data.user_id}")
    user = _get_user_or_404(db, data.user_id)

    if not is_otp_valid(user.otp, user.otp_expires, data.otp, utcnow()):
        logger.warning(f"Password reset failed for user {user.id}: invalid or expired OTP.")
        raise HTTPException(status.HTTP_400_BAD_REQUEST, INVALID_OTP)

    user.hashed_password = get_password_hash(data.new_password)
    user.otp = None
    user.otp_expires = None
    _commit(db, user, "reset the password")
    logger.info(f"Password reset for user {user.id}.")

    return {"message": "Password reset successfully!"}


@router.get("/me", response_model=schemas.UserSummary)
def read_current_user(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Returns the account bound to the bearer token."""
    return _get_user_or_404(db, user_id)
