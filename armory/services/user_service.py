from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from armory.auth import Principal, Role
from armory.errors import Conflict, NotFound, PermissionDenied, ValidationError
from armory.models import Assignment, MilitaryBase, Purchase, User, UserRole
from armory.security.passwords import check_password_policy, hash_password
from armory.services.audit_service import log_audit
from armory.services.input_parsing import parse_optional_id
from armory.services.unit_of_work import Step, apply_atomically

logger = logging.getLogger(__name__)

_UNSET = object()


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _require_admin(principal: Principal, action: str) -> None:
    if principal.role != Role.ADMIN:
        raise PermissionDenied(f'Only admins can {action}')


def parse_role(raw: UserRole | str | None) -> UserRole:
    if isinstance(raw, UserRole):
        return raw
    try:
        return UserRole(str(raw or '').strip().upper())
    except ValueError as exc:
        raise ValidationError(f'Invalid role: {raw!r}') from exc


def _normalize_email(raw: str | None) -> str:
    email = (raw or '').strip().lower()
    if not email or '@' not in email:
        raise ValidationError('A valid email is required')
    return email


def _email_taken(db: Session, email: str, *, exclude_user_id: int | None = None) -> bool:
    query = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    return db.execute(query).scalar_one_or_none() is not None


def _resolve_base(db: Session, role: UserRole, base_id: int | None) -> int | None:
    if role == UserRole.ADMIN:
        return None
    if base_id is None:
        raise ValidationError('Base is required for non-admin users')
    if not db.get(MilitaryBase, base_id):
        raise NotFound('Base not found')
    return base_id


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role.value if hasattr(user.role, 'value') else str(user.role),
        'base_id': user.base_id,
        'active': user.active,
        'created_at': user.created_at,
        'updated_at': user.updated_at,
    }


def list_users(db: Session, *, principal: Principal) -> list[dict]:
    _require_admin(principal, 'view all users')
    query = (
        select(User, MilitaryBase.name)
        .outerjoin(MilitaryBase, MilitaryBase.id == User.base_id)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    return [{**serialize_user(user), 'base_name': base_name} for user, base_name in db.execute(query).all()]


def create_user(
    db: Session,
    *,
    principal: Principal,
    email: str | None,
    password: str | None,
    name: str | None,
    role: UserRole | str | None,
    base_id: int | str | None,
) -> User:
    _require_admin(principal, 'create users')
    if not email or not password or not role:
        raise ValidationError('Email, password, and role are required')
    check_password_policy(password)
    email = _normalize_email(email)
    parsed_role = parse_role(role)
    requested_base = parse_optional_id(base_id, field='baseId')

    def _record(tx: Session, _results) -> User:
        if _email_taken(tx, email):
            raise Conflict('Email already exists')
        user = User(
            email=email,
            name=(name or '').strip() or None,
            password_hash=hash_password(password),
            role=parsed_role,
            base_id=_resolve_base(tx, parsed_role, requested_base),
            active=True,
        )
        tx.add(user)
        tx.flush()
        return user

    def _audit(tx: Session, results) -> None:
        log_audit(
            tx,
            action='CREATE_USER',
            entity='User',
            entity_id=results['record'].id,
            user_id=principal.id,
            details=f'Created user {email} with role {parsed_role.value}',
        )

    try:
        results = apply_atomically(db, [Step('record', _record), Step('audit', _audit)])
    except IntegrityError as exc:
        raise Conflict('Email already exists') from exc
    logger.info('User created', extra={'user_id': results['record'].id, 'role': parsed_role.value})
    return results['record']


def update_user(
    db: Session,
    *,
    principal: Principal,
    user_id: int,
    email: str | None = None,
    password: str | None = None,
    name=_UNSET,
    role: UserRole | str | None = None,
    base_id=_UNSET,
    active: bool | None = None,
) -> User:
    _require_admin(principal, 'update users')
    new_email = _normalize_email(email) if email else None
    new_role = parse_role(role) if role else None
    new_base = _UNSET if base_id is _UNSET else parse_optional_id(base_id, field='baseId')

    def _record(tx: Session, _results) -> User:
        user = tx.get(User, user_id)
        if not user:
            raise NotFound('User not found')
        if new_email and new_email != user.email:
            if _email_taken(tx, new_email, exclude_user_id=user.id):
                raise Conflict('Email already exists')
            user.email = new_email
        if name is not _UNSET:
            user.name = (name or '').strip() or None
        if new_role:
            user.role = new_role
        if password:
            user.password_hash = hash_password(check_password_policy(password))
        if active is not None:
            user.active = active
        effective_role = user.role if isinstance(user.role, UserRole) else UserRole(user.role)
        if new_base is not _UNSET or new_role:
            user.base_id = _resolve_base(tx, effective_role, user.base_id if new_base is _UNSET else new_base)
        user.updated_at = _now()
        tx.flush()
        return user

    def _audit(tx: Session, results) -> None:
        log_audit(
            tx,
            action='UPDATE_USER',
            entity='User',
            entity_id=user_id,
            user_id=principal.id,
            details=f'Updated user {results["record"].email}',
        )

    try:
        results = apply_atomically(db, [Step('record', _record), Step('audit', _audit)])
    except IntegrityError as exc:
        raise Conflict('Email already exists') from exc
    return results['record']


def delete_user(db: Session, *, principal: Principal, user_id: int) -> None:
    _require_admin(principal, 'delete users')
    if user_id == principal.id:
        raise ValidationError('Cannot delete your own account')

    def _remove(tx: Session, _results) -> str:
        user = tx.get(User, user_id)
        if not user:
            raise NotFound('User not found')
        has_history = tx.execute(
            select(exists().where(Purchase.user_id == user_id) | exists().where(Assignment.user_id == user_id))
        ).scalar()
        if has_history:
            raise Conflict('User has recorded transactions; deactivate the account instead')
        email = user.email
        tx.delete(user)
        tx.flush()
        return email

    def _audit(tx: Session, results) -> None:
        log_audit(
            tx,
            action='DELETE_USER',
            entity='User',
            entity_id=user_id,
            user_id=principal.id,
            details=f'Deleted user {results["remove"]}',
        )

    apply_atomically(db, [Step('remove', _remove), Step('audit', _audit)])
    logger.info('User deleted', extra={'user_id': user_id})
