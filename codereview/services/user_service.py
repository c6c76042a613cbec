"""
User Service — registration, login, profile and password management.
"""

import logging
import secrets
from urllib.parse import urlparse

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from codereview.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from codereview.models.auth import User
from codereview.models.roles import SELF_REGISTRATION_ROLES, GlobalRole
from codereview.utils.crypto import hash_password, verify_password
from codereview.utils.errors import E

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes and refuses longer input
MAX_PASSWORD_BYTES = 72

# Hashes compared against when the email is unknown, one per cost factor,
# so both login failure paths do the same bcrypt work.
_dummy_hashes: dict[int, str] = {}


def _bcrypt_rounds() -> int:
    return current_app.config.get("BCRYPT_ROUNDS", 12)


def _dummy_hash() -> str:
    rounds = _bcrypt_rounds()
    if rounds not in _dummy_hashes:
        _dummy_hashes[rounds] = hash_password(secrets.token_urlsafe(16), rounds=rounds)
    return _dummy_hashes[rounds]


def normalize_email(email: str) -> str:
    """Validate and normalize an e-mail address (lower-cased)."""
    if not isinstance(email, str):
        raise ValidationError("Validation failed", details={"email": "Please provide a valid email"})
    try:
        valid = validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("Validation failed", details={"email": f"Please provide a valid email: {e}"})
    return valid.normalized.lower()


def _validate_password(password: str, field: str = "password") -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "Validation failed",
            details={field: f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"},
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            "Validation failed",
            details={field: f"Password must be at most {MAX_PASSWORD_BYTES} bytes long"},
        )


def _validate_avatar_url(url: str) -> None:
    if not isinstance(url, str):
        raise ValidationError("Validation failed", details={"avatarUrl": "Please provide a valid URL"})
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Validation failed", details={"avatarUrl": "Please provide a valid URL"})


class UserService:
    """Credential store operations over an injected SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    # ── Registration & login ──────────────────────────────────────────

    def register_user(
        self,
        email: str,
        password: str,
        name: str | None = None,
        role: GlobalRole | None = None,
    ) -> User:
        """Create an account. Only reviewer/submitter may be self-assigned."""
        email = normalize_email(email)
        _validate_password(password)
        role = role or GlobalRole.SUBMITTER
        if role not in SELF_REGISTRATION_ROLES:
            raise ValidationError("Validation failed", details={"role": "Invalid role"})

        if self.get_user_by_email(email) is not None:
            raise ConflictError("User", "email", email)

        user = User(
            email=email,
            password_hash=hash_password(password, rounds=_bcrypt_rounds()),
            name=(name.strip() or None) if isinstance(name, str) else None,
            role=role,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            self.session.rollback()
            raise ConflictError("User", "email", email)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("User registration failed: %s", exc)
            raise PersistenceError("Could not create user") from exc

        logger.info("User registered id=%s role=%s", user.id, user.role.value)
        return user

    def authenticate(self, email: str, password: str) -> User:
        """Return the user for valid credentials.

        Unknown e-mail and wrong password raise the same error so the
        response does not reveal whether an account exists.
        """
        if not isinstance(email, str) or not isinstance(password, str):
            raise AuthenticationError("Invalid credentials", code=E.INVALID_CREDENTIALS)
        user = self.get_user_by_email(email.strip().lower())
        stored_hash = user.password_hash if user else _dummy_hash()
        if not verify_password(password, stored_hash) or user is None:
            raise AuthenticationError("Invalid credentials", code=E.INVALID_CREDENTIALS)
        return user

    # ── Lookup ────────────────────────────────────────────────────────

    def get_user_by_email(self, email: str) -> User | None:
        return self.session.query(User).filter_by(email=email).first()

    def get_user(self, user_id: str) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    # ── Profile ───────────────────────────────────────────────────────

    def update_profile(self, user_id: str, name: str | None = None, avatar_url: str | None = None) -> User:
        """Update name and/or avatar. ``None`` leaves a field unchanged."""
        user = self.get_user(user_id)
        if name is not None:
            if not isinstance(name, str):
                raise ValidationError("Validation failed", details={"name": "Name must be a string"})
            user.name = name.strip() or None
        if avatar_url is not None:
            _validate_avatar_url(avatar_url)
            user.avatar_url = avatar_url
        self._commit("Could not update profile")
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.get_user(user_id)
        if not isinstance(current_password, str) or not verify_password(current_password, user.password_hash):
            raise ValidationError(
                "Current password is incorrect",
                details={"currentPassword": "Current password is incorrect"},
            )
        _validate_password(new_password, field="newPassword")
        user.password_hash = hash_password(new_password, rounds=_bcrypt_rounds())
        self._commit("Could not change password")
        logger.info("Password changed for user id=%s", user.id)

    def _commit(self, message: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("%s: %s", message, exc)
            raise PersistenceError(message) from exc
