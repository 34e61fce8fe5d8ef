# Overview: Service-layer operations for auth; staff accounts and password checks.

"""
Authentication Service

WHY: Every order, stock movement and audit entry must be attributable to a
staff member. Passwords are hashed with bcrypt; session tokens live in
session_service.

ROLES:
- ADMIN: everything
- MANAGER: catalog, pricing, tax, overrides, returns, audit log
- SALES_AGENT: checkout and own orders
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import User
from trustpos.time_utils import utcnow

ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_SALES_AGENT = "SALES_AGENT"
ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_SALES_AGENT)


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with upper, lower, digit and special character.
    """
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", details={"field": "password"})
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter", details={"field": "password"})
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter", details={"field": "password"})
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one digit", details={"field": "password"})
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise ValidationError("Password must contain at least one special character", details={"field": "password"})


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(username: str, email: str, password: str, role: str = ROLE_SALES_AGENT) -> User:
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", details={"field": "role"})

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        username=username,
        email=email.lower(),
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Returns the active User for these credentials, or None.
    Accepts username or email as the identifier.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username.lower()),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
