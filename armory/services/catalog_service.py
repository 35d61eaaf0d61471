from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from armory.errors import Conflict, NotFound, ValidationError
from armory.models import Equipment

logger = logging.getLogger(__name__)


def normalize_equipment_name(name: str | None) -> str:
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError('Equipment name is required')
    return cleaned


def find_equipment(db: Session, name: str) -> Equipment | None:
    return db.execute(select(Equipment).where(Equipment.name == name)).scalar_one_or_none()


def get_equipment_by_name(db: Session, name: str | None) -> Equipment:
    cleaned = normalize_equipment_name(name)
    equipment = find_equipment(db, cleaned)
    if not equipment:
        raise NotFound(f'Equipment not found: {cleaned}')
    return equipment


def resolve_or_create_equipment(db: Session, name: str | None) -> Equipment:
    """Look up equipment by exact name, creating it on first use.

    Must run inside the caller's transaction. A concurrent first use of the same name
    trips the unique constraint; that is retried once as a plain fetch.
    """
    cleaned = normalize_equipment_name(name)
    equipment = find_equipment(db, cleaned)
    if equipment:
        return equipment

    try:
        with db.begin_nested():
            equipment = Equipment(name=cleaned)
            db.add(equipment)
            db.flush()
    except IntegrityError as exc:
        logger.info('Equipment created concurrently, fetching existing row', extra={'equipment': cleaned})
        equipment = find_equipment(db, cleaned)
        if not equipment:
            raise Conflict(f'Could not register equipment {cleaned!r}') from exc
        return equipment

    logger.info('Registered new equipment', extra={'equipment': cleaned, 'equipment_id': equipment.id})
    return equipment


def list_equipment(db: Session) -> list[Equipment]:
    return db.execute(select(Equipment).order_by(Equipment.name.asc())).scalars().all()
