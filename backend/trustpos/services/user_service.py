# Overview: Service-layer operations for staff accounts; admin user management with audited changes.

"""
Staff Account Management

Built on auth_service.create_user / hash_password. Accounts are never
deleted, because orders, stock movements and audit entries reference them;
"delete" is deactivation, which also revokes every live session.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, InvalidState, UserNotFound, ValidationError
from ..models import User
from . import audit_service, auth_service, session_service


def list_users(role: str | None = None, include_inactive: bool = True) -> list[dict]:
    q = db.session.query(User)
    if role:
        q = q.filter(User.role == role.upper())
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return [u.to_dict() for u in q.order_by(User.username.asc()).all()]


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found", details={"user_id": user_id})
    return user


def create_user(data: dict, actor_id: int | None) -> User:
    user = auth_service.create_user(data["username"], data["email"], data["password"], role=data["role"])
    audit_service.record(
        audit_service.USER_CREATE,
        "USER",
        user.id,
        actor_id,
        new_value=user.to_dict(),
    )
    return user


def update_user(user_id: int, patch: dict, actor_id: int | None) -> User:
    """
    Apply a username/email/role/password patch.

    A password change revokes the user's sessions; the hash never reaches
    the audit log, only the fact that it changed.
    """
    user = get_user(user_id)
    old = user.to_dict()

    for key in ("username", "email"):
        if key in patch:
            taken = db.session.query(User.id).filter(
                getattr(User, key) == patch[key], User.id != user.id
            ).first()
            if taken is not None:
                raise ConflictError(f"{key} already in use", details={"field": key})

    if patch.get("role") and user.id == actor_id and patch["role"] != user.role:
        raise ValidationError("Cannot change your own role", details={"field": "role"})

    for key in ("username", "email", "role"):
        if key in patch:
            setattr(user, key, patch[key])
    password_changed = "password" in patch
    if password_changed:
        user.password_hash = auth_service.hash_password(patch["password"])
    db.session.commit()

    if password_changed:
        session_service.revoke_all_user_sessions(user.id)

    new = user.to_dict()
    if password_changed:
        new["password_changed"] = True
    audit_service.record(audit_service.USER_UPDATE, "USER", user.id, actor_id, old_value=old, new_value=new)
    return user


def deactivate_user(user_id: int, actor_id: int | None) -> tuple[User, int]:
    """Deactivate an account and revoke its sessions. Returns (user, sessions_revoked)."""
    user = get_user(user_id)
    if user.id == actor_id:
        raise ValidationError("Cannot deactivate your own account", details={"user_id": user_id})
    if not user.is_active:
        raise InvalidState("User is already deactivated", details={"user_id": user_id})

    old = user.to_dict()
    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user.id)

    audit_service.record(
        audit_service.USER_DEACTIVATE,
        "USER",
        user.id,
        actor_id,
        old_value=old,
        new_value=user.to_dict(),
        reason=f"Revoked {revoked} sessions",
    )
    return user, revoked


def reactivate_user(user_id: int, actor_id: int | None) -> User:
    user = get_user(user_id)
    if user.is_active:
        raise InvalidState("User is already active", details={"user_id": user_id})

    user.is_active = True
    db.session.commit()
    audit_service.record(audit_service.USER_REACTIVATE, "USER", user.id, actor_id, new_value=user.to_dict())
    return user
