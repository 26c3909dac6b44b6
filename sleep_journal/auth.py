import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sleep_journal.config import (
    COOKIE_SECURE,
    SESSION_COOKIE_NAME,
    SESSION_DURATION_DAYS,
)
from sleep_journal.database import get_db
from sleep_journal.models import User, UserSession
from sleep_journal.rate_limit import RateLimiter, RateLimitExceeded
from sleep_journal.security import generate_session_token, get_password_hash, verify_password
from sleep_journal.validation import RegistrationRequest, SignInRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

SESSION_DURATION = timedelta(days=SESSION_DURATION_DAYS)


class NotAuthenticatedError(Exception):
    """Raised when a request has no valid, unexpired session."""
    pass


class EmailAlreadyRegisteredError(Exception):
    """Raised when registering an email that already has an account."""
    pass


def _utcnow() -> datetime:
    """Naive UTC timestamp, the format session expiry is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Users and sessions
# =============================================================================

def create_user(db: Session, registration: RegistrationRequest) -> User:
    """Create a user with a bcrypt-hashed password.

    Raises:
        EmailAlreadyRegisteredError: If the email is already taken.
    """
    if db.query(User).filter(User.email == registration.email).first() is not None:
        raise EmailAlreadyRegisteredError(registration.email)

    user = User(
        name=registration.name,
        email=registration.email,
        password_hash=get_password_hash(registration.password),
        age=registration.age,
        city=registration.city,
        country=registration.country,
        gender=registration.gender,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as e:
        # Lost a race against a concurrent registration of the same email
        db.rollback()
        raise EmailAlreadyRegisteredError(registration.email) from e
    return user


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """Return the user if the credentials match, None otherwise."""
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def create_session(db: Session, user: User, now: Optional[datetime] = None) -> UserSession:
    """Persist a new session for the user and return it."""
    now = now or _utcnow()
    session = UserSession(
        user_id=user.id,
        session_token=generate_session_token(),
        expires_at=now + SESSION_DURATION,
    )
    db.add(session)
    db.flush()
    return session


def get_session_user(db: Session, session_token: Optional[str], now: Optional[datetime] = None) -> Optional[User]:
    """Look up the user owning an unexpired session token."""
    if not session_token:
        return None
    now = now or _utcnow()
    return (
        db.query(User)
        .join(UserSession, UserSession.user_id == User.id)
        .filter(UserSession.session_token == session_token, UserSession.expires_at > now)
        .first()
    )


def delete_session(db: Session, session_token: str) -> None:
    db.query(UserSession).filter(UserSession.session_token == session_token).delete(synchronize_session=False)


def cleanup_expired_sessions(db: Session, now: Optional[datetime] = None) -> int:
    """Delete expired sessions. Returns the number of rows removed."""
    now = now or _utcnow()
    return db.query(UserSession).filter(UserSession.expires_at < now).delete(synchronize_session=False)


def set_session_cookie(response: Response, session_token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_token,
        max_age=int(SESSION_DURATION.total_seconds()),
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def get_rate_limiter(request: Request) -> RateLimiter:
    """The per-process limiter created in the application lifespan."""
    return request.app.state.rate_limiter


def require_user(db: Session, session_token: Optional[str]) -> User:
    """Resolve the session user or raise NotAuthenticatedError."""
    user = get_session_user(db, session_token)
    if user is None:
        raise NotAuthenticatedError("Not authenticated. Please sign in at /auth/signin first.")
    return user


def get_current_user(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency: the signed-in user, or 401."""
    try:
        return require_user(db, session_token)
    except NotAuthenticatedError as e:
        raise HTTPException(status_code=401, detail=str(e))


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/register")
def register(
    registration: RegistrationRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Create an account and sign the new user in.

    Returns:
        {"success": true, "user": {...}} and sets the session cookie.
    """
    try:
        user = create_user(db, registration)
        session = create_session(db, user)
    except EmailAlreadyRegisteredError:
        logger.info("Registration rejected: email already registered")
        raise HTTPException(status_code=409, detail="Este email ya está registrado")
    except SQLAlchemyError as e:
        logger.error(f"Registration failed: {e}")
        raise HTTPException(status_code=500, detail="Error al crear la cuenta. Inténtalo de nuevo.")

    set_session_cookie(response, session.session_token)
    logger.info(f"Registered user {user.id}")
    return {"success": True, "user": user.to_dict()}


@router.post("/signin")
def signin(
    credentials: SignInRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Sign in with email and password.

    Attempts are limited per client address and email; too many failures
    in the window return 429 with a Retry-After header.
    """
    client_host = request.client.host if request.client else "unknown"
    limit_key = f"signin:{client_host}:{credentials.email}"

    expired_windows = rate_limiter.cleanup()
    if expired_windows:
        logger.debug(f"Dropped {expired_windows} expired sign-in windows")

    try:
        rate_limiter.check(limit_key)
    except RateLimitExceeded as e:
        retry_after = e.result.retry_after(rate_limiter.now())
        raise HTTPException(
            status_code=429,
            detail="Demasiados intentos. Inténtalo más tarde.",
            headers={"Retry-After": str(retry_after)},
        )

    try:
        removed = cleanup_expired_sessions(db)
        # Committed on its own so a failed sign-in doesn't roll it back
        db.commit()
        if removed:
            logger.debug(f"Removed {removed} expired sessions")

        user = authenticate_user(db, credentials.email, credentials.password)
        if user is None:
            logger.warning(f"Sign-in failed for {credentials.email}")
            raise HTTPException(status_code=401, detail="Email o contraseña incorrectos")

        session = create_session(db, user)
    except SQLAlchemyError as e:
        logger.error(f"Sign-in failed unexpectedly: {e}")
        raise HTTPException(status_code=500, detail="Error al iniciar sesión")

    rate_limiter.reset(limit_key)
    set_session_cookie(response, session.session_token)
    logger.info(f"Sign-in successful for user {user.id}")
    return {"success": True, "user": user.to_dict()}


@router.post("/signout")
def signout(
    response: Response,
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: Session = Depends(get_db),
):
    """Delete the current session and clear the cookie."""
    if session_token:
        try:
            delete_session(db, session_token)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete session: {e}")
            raise HTTPException(status_code=500, detail="Error al cerrar sesión")

    clear_session_cookie(response)
    return {"success": True, "message": "Sesión cerrada exitosamente"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    """The signed-in user's profile."""
    return {"user": user.to_dict()}


@router.get("/status")
def auth_status(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: Session = Depends(get_db),
):
    """Check if the request carries a valid session."""
    return {"authenticated": get_session_user(db, session_token) is not None}
