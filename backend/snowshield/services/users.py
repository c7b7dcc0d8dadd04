"""
Accounts, profiles and sign-in sessions.
"""
import re
import secrets
import uuid
from typing import Optional

import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from snowshield.errors import AuthenticationError, StorageError, ValidationError, log_error
from snowshield.logging_config import get_logger
from snowshield.models import Account, AuthSession, UserProfile
from snowshield.schemas import ProfileUpdate, USER, USER_TYPES
from snowshield.session import SessionContext
from snowshield.timeutils import utcnow

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only reads the first 72 bytes
MAX_PASSWORD_BYTES = 72
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PINCODE_RE = re.compile(r"^\d+$")


def hash_password(password: str) -> str:
    """Hash password with bcrypt"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Verify password against a bcrypt hash; a malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def _validate_pincode(pincode: Optional[str]) -> str:
    pincode = (pincode or "").strip()
    if not pincode:
        raise ValidationError("Pincode is required", context={"field": "pincode"})
    if not PINCODE_RE.match(pincode):
        raise ValidationError("Pincode must contain only numbers", context={"field": "pincode"})
    return pincode


def _commit(db: Session, operation: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        error = StorageError(f"{operation} failed: {e}")
        log_error(logger, error, operation)
        raise error from e


def _open_session(db: Session, account: Account) -> SessionContext:
    token = secrets.token_hex(32)
    db.add(AuthSession(token=token, user_id=account.id, created_at=utcnow()))
    _commit(db, "openSession")
    profile = get_profile(db, account.id)
    return SessionContext(token=token, user_id=account.id, email=account.email, profile=profile)


def signup(
    db: Session,
    email: str,
    password: str,
    name: str,
    pincode: str,
    phone: str = "",
) -> SessionContext:
    """
    Create an account with a 'user' profile and sign it in.

    Raises:
        ValidationError: malformed email, short password, empty name,
            bad pincode, or email already registered
    """
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError(
            "Invalid email address. Please check your email format.",
            code="auth/invalid-email",
            context={"field": "email"},
        )
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            code="auth/weak-password",
            context={"field": "password"},
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
            context={"field": "password"},
        )
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", context={"field": "name"})
    pincode = _validate_pincode(pincode)

    if db.query(Account).filter(Account.email == email).first():
        raise ValidationError(
            "This email is already in use. Please use another email.",
            code="auth/email-already-in-use",
            context={"field": "email"},
        )

    now = utcnow()
    account = Account(
        id=uuid.uuid4().hex,
        email=email,
        display_name=name,
        password_hash=hash_password(password),
        created_at=now,
    )
    profile = UserProfile(
        id=account.id,
        email=email,
        name=name,
        phone=(phone or "").strip(),
        pincode=pincode,
        user_type=USER,
        created_at=now,
    )
    db.add(account)
    db.add(profile)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError(
            "This email is already in use. Please use another email.",
            code="auth/email-already-in-use",
        ) from e
    except SQLAlchemyError as e:
        db.rollback()
        error = StorageError(f"signup failed: {e}")
        log_error(logger, error, "signup")
        raise error from e

    logger.info(f"Created account id={account.id}")
    return _open_session(db, account)


def login(db: Session, email: str, password: str) -> SessionContext:
    email = (email or "").strip().lower()
    account = db.query(Account).filter(Account.email == email).first()
    if account is None or not verify_password(password or "", account.password_hash):
        logger.info("Rejected sign-in attempt")
        raise AuthenticationError(
            "Invalid email or password. Please try again.",
            code="auth/invalid-credential",
        )
    return _open_session(db, account)


def logout(db: Session, token: str) -> None:
    db.query(AuthSession).filter(AuthSession.token == token).delete()
    _commit(db, "logout")


def resolve_session(db: Session, token: Optional[str]) -> Optional[SessionContext]:
    """Session context for a bearer token, or None when the token is unknown."""
    if not token:
        return None
    row = db.get(AuthSession, token)
    if row is None:
        return None
    account = db.get(Account, row.user_id)
    if account is None:
        return None
    profile = get_profile(db, account.id)
    return SessionContext(token=token, user_id=account.id, email=account.email, profile=profile)


def get_profile(db: Session, user_id: str) -> Optional[UserProfile]:
    """
    Profile for an account. A missing profile is synthesized with
    defaults and saved; None only when the account itself is unknown.
    """
    profile = db.get(UserProfile, user_id)
    if profile is not None:
        return profile

    account = db.get(Account, user_id)
    if account is None:
        logger.debug(f"No account for uid {user_id}")
        return None

    logger.info(f"No user profile found for uid {user_id}; creating default profile")
    profile = UserProfile(
        id=user_id,
        email=account.email,
        name=account.display_name or "",
        phone="",
        pincode=None,
        user_type=USER,
        created_at=utcnow(),
    )
    db.add(profile)
    _commit(db, "createDefaultProfile")
    return profile


def update_profile(db: Session, user_id: str, patch: ProfileUpdate) -> Optional[UserProfile]:
    """Apply a self-service edit (name, phone, pincode)."""
    profile = get_profile(db, user_id)
    if profile is None:
        return None

    changes = patch.model_dump(exclude_unset=True)
    if "pincode" in changes:
        changes["pincode"] = _validate_pincode(changes["pincode"])
    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Name is required", context={"field": "name"})
        changes["name"] = name
        account = db.get(Account, user_id)
        if account is not None:
            account.display_name = name
    if "phone" in changes:
        changes["phone"] = (changes["phone"] or "").strip()

    for field, value in changes.items():
        setattr(profile, field, value)
    profile.updated_at = utcnow()
    _commit(db, "updateProfile")
    logger.info(f"Updated profile uid={user_id} fields={sorted(changes)}")
    return profile


def set_user_type(db: Session, user_id: str, user_type: str) -> Optional[UserProfile]:
    """Change a user's role. Callers must already have checked admin rights."""
    if user_type not in USER_TYPES:
        raise ValidationError(
            f"Invalid user type '{user_type}'. Expected one of: {', '.join(USER_TYPES)}",
            context={"field": "userType"},
        )
    profile = get_profile(db, user_id)
    if profile is None:
        return None
    profile.user_type = user_type
    profile.updated_at = utcnow()
    _commit(db, "setUserType")
    logger.info(f"Set user type uid={user_id} userType={user_type}")
    return profile
