from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from armory.auth import Principal, Role
from armory.errors import Conflict, PermissionDenied, ValidationError
from armory.models import MilitaryBase
from armory.services.audit_service import log_audit
from armory.services.unit_of_work import Step, apply_atomically

logger = logging.getLogger(__name__)


def list_bases(db: Session) -> list[MilitaryBase]:
    return db.execute(select(MilitaryBase).order_by(MilitaryBase.name.asc())).scalars().all()


def create_base(db: Session, *, principal: Principal, name: str | None, location: str | None) -> MilitaryBase:
    if principal.role != Role.ADMIN:
        raise PermissionDenied('Only admins can create bases')
    cleaned_name = (name or '').strip()
    if not cleaned_name:
        raise ValidationError('Base name is required')
    cleaned_location = (location or '').strip()

    def _record(tx: Session, _results) -> MilitaryBase:
        if tx.execute(select(MilitaryBase.id).where(MilitaryBase.name == cleaned_name)).scalar_one_or_none():
            raise Conflict(f'Base already exists: {cleaned_name}')
        base = MilitaryBase(name=cleaned_name, location=cleaned_location)
        tx.add(base)
        tx.flush()
        return base

    def _audit(tx: Session, results) -> None:
        log_audit(
            tx,
            action='CREATE_BASE',
            entity='Base',
            entity_id=results['record'].id,
            user_id=principal.id,
            details=f'Created base {cleaned_name} ({cleaned_location})',
        )

    try:
        results = apply_atomically(db, [Step('record', _record), Step('audit', _audit)])
    except IntegrityError as exc:
        raise Conflict(f'Base already exists: {cleaned_name}') from exc
    logger.info('Base created', extra={'base_id': results['record'].id, 'base_name': cleaned_name})
    return results['record']
