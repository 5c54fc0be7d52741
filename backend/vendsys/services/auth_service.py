# Overview: Service-layer operations for user accounts; password hashing and alert preferences.

"""
User Account Service

WHY: Back-office users log into the dashboard and are the recipients of
fleet alerts. Password handling follows the same rules everywhere.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Emails are normalized (trimmed, lowercased) so uniqueness is case-insensitive
"""

import re

import bcrypt

from ..errors import NotFoundError
from ..models import User
from ..models.auth import ROLE_TECHNICIAN, VALID_ROLES
from ..validation import ValidationError
from . import entity_store


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    normalized = (email or "").strip().lower()
    if not EMAIL_RE.match(normalized):
        raise ValidationError("A valid email is required")
    return normalized


def _require_bool(field: str, value) -> bool:
    # JSON true/false only; bool("false") would opt the user in
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def create_user(
    email: str,
    name: str,
    password: str,
    role: str = ROLE_TECHNICIAN,
    notify_machine_offline: bool = True,
    notify_low_stock: bool = False,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad email, name, role or alert preference
        PasswordValidationError: weak password
        ConflictError: email already registered (case-insensitive)
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of {', '.join(VALID_ROLES)}")

    notify_machine_offline = _require_bool("machine_offline", notify_machine_offline)
    notify_low_stock = _require_bool("low_stock", notify_low_stock)

    password_hash = hash_password(password)

    return entity_store.create(
        User,
        conflict_key={"email": email},
        email=email,
        name=name,
        role=role,
        password_hash=password_hash,
        notify_email_machine_offline=notify_machine_offline,
        notify_email_low_stock=notify_low_stock,
    )


def authenticate(email: str, password: str) -> User | None:
    """Return the active user for these credentials, or None."""
    try:
        email = normalize_email(email)
    except ValidationError:
        return None
    user = entity_store.find_by_key(User, email=email, is_active=True)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def list_users(role: str | None = None) -> list[User]:
    if role:
        return entity_store.find_all(User, role=role, order_by=User.email)
    return entity_store.find_all(User, order_by=User.email)


def update_notification_preferences(
    user_id: int,
    *,
    machine_offline: bool | None = None,
    low_stock: bool | None = None,
) -> User:
    values = {}
    if machine_offline is not None:
        values["notify_email_machine_offline"] = _require_bool("machine_offline", machine_offline)
    if low_stock is not None:
        values["notify_email_low_stock"] = _require_bool("low_stock", low_stock)
    if not values:
        raise ValidationError("No preferences provided")

    if not entity_store.update_by_id(User, user_id, values):
        raise NotFoundError(f"User {user_id} not found")
    return entity_store.get_by_key(User, id=user_id)
