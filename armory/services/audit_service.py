from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from armory.auth import Principal, Role
from armory.errors import PermissionDenied
from armory.models import AuditLog, AuthEvent


def log_auth_event(
    db: Session,
    *,
    attempted_email: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    user_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_email=attempted_email,
            success=success,
            failure_reason=failure_reason,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    action: str,
    entity: str,
    entity_id: int | str | None,
    user_id: int | None,
    details: str = '',
) -> AuditLog:
    entry = AuditLog(
        action=action,
        entity=entity,
        entity_id=None if entity_id is None else str(entity_id),
        user_id=user_id,
        details=details,
    )
    db.add(entry)
    # Flush here so a failing audit write aborts the surrounding unit instead of the commit.
    db.flush()
    return entry


def list_audit_entries(db: Session, *, principal: Principal, limit: int = 200) -> list[AuditLog]:
    if principal.role != Role.ADMIN:
        raise PermissionDenied('Only admins can read the audit log')
    return db.execute(
        select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(max(1, min(limit, 1000)))
    ).scalars().all()
