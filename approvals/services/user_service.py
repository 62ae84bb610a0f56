"""
User Service — registration, confirmation, login and the user directory.
"""

import logging
import secrets

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from approvals.core.exceptions import ValidationError
from approvals.models import db
from approvals.models.user import ROLES, SELF_SERVICE_ROLES, User
from approvals.services.email_service import EmailService
from approvals.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2


class UserServiceError(Exception):
    """Custom exception for user service errors."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _allowed_domain() -> str:
    return current_app.config.get("ALLOWED_EMAIL_DOMAIN", "").lower()


def normalize_email(email: str) -> str:
    """Validate syntax and domain; return the lower-cased address."""
    try:
        valid = validate_email(email if isinstance(email, str) else "", check_deliverability=False)
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}")
    normalized = valid.normalized.lower()

    domain = _allowed_domain()
    if domain and not normalized.endswith(f"@{domain}"):
        raise UserServiceError(f"Only @{domain} addresses may register", 403)
    return normalized


# ═══════════════════════════════════════════════════════════════
# Registration & confirmation
# ═══════════════════════════════════════════════════════════════
def register_user(email: str, password: str, name: str, role: str = "employee") -> User:
    """Create an unconfirmed user and send the confirmation email."""
    email = normalize_email(email)

    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    name = name.strip() if isinstance(name, str) else ""
    if len(name) < MIN_NAME_LENGTH:
        raise UserServiceError(f"Name must be at least {MIN_NAME_LENGTH} characters")
    role = role or "employee"
    if not isinstance(role, str) or role not in SELF_SERVICE_ROLES:
        raise UserServiceError(f"Role must be one of {sorted(SELF_SERVICE_ROLES)}")

    if User.query.filter_by(email=email).first():
        raise UserServiceError(f"User with email {email} already exists", 409)

    user = User(
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password),
        is_confirmed=False,
        confirmation_token=secrets.token_hex(32),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User registered: id=%s email=%s role=%s", user.id, user.email, user.role)

    _send_confirmation(user)
    return user


def _send_confirmation(user: User) -> None:
    base_url = current_app.config.get("BASE_URL", "").rstrip("/")
    try:
        EmailService.send_from_template(
            to_email=user.email,
            to_name=user.name,
            template_name="account_confirmation",
            context={
                "name": user.name,
                "confirmation_url": f"{base_url}/api/v1/auth/confirm?token={user.confirmation_token}",
            },
        )
    except Exception:
        logger.warning("Confirmation email failed for user %s", user.id, exc_info=True)


def confirm_user(token: str) -> User:
    """Mark the user owning ``token`` as confirmed."""
    if not token:
        raise ValidationError("Confirmation token is required", details={"token": "required"})
    user = User.query.filter_by(confirmation_token=token).first()
    if user is None:
        raise ValidationError("Invalid or expired confirmation token", details={"token": "unknown"})

    user.is_confirmed = True
    user.confirmation_token = None
    db.session.commit()
    logger.info("User confirmed: id=%s", user.id)
    return user


# ═══════════════════════════════════════════════════════════════
# Login helpers
# ═══════════════════════════════════════════════════════════════
def authenticate_user(email: str, password: str) -> User:
    """Authenticate a user with email + password. Returns User on success."""
    email = (email or "").strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password or "", user.password_hash):
        raise UserServiceError("Invalid email or password", 401)

    # Domain users who never clicked the link are confirmed on first login
    if not user.is_confirmed:
        domain = _allowed_domain()
        if domain and user.email.endswith(f"@{domain}"):
            user.is_confirmed = True
            user.confirmation_token = None
            db.session.commit()
            logger.info("User auto-confirmed on login: id=%s", user.id)
        else:
            raise UserServiceError("Account not confirmed", 403)

    return user


# ═══════════════════════════════════════════════════════════════
# Directory
# ═══════════════════════════════════════════════════════════════
def get_user(user_id: int) -> User | None:
    """Find a user by ID."""
    return db.session.get(User, user_id)


def list_users() -> list[User]:
    return User.query.order_by(User.name.asc(), User.id.asc()).all()


def list_users_by_role(role: str) -> list[User]:
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}", details={"role": f"must be one of {sorted(ROLES)}"})
    return User.query.filter_by(role=role).order_by(User.name.asc(), User.id.asc()).all()
