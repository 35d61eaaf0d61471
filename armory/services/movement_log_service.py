from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import Enum

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, aliased

from armory.errors import ValidationError
from armory.models import Assignment, AssignmentType, Equipment, MilitaryBase, Purchase, Transfer, TransferStatus, User
from armory.services.input_parsing import parse_period_end, parse_period_start
from armory.services.scope_service import BaseScope

TRANSFER_ACTOR = 'System'


class MovementAction(str, Enum):
    PURCHASE = 'PURCHASE'
    TRANSFER = 'TRANSFER'
    ASSIGNMENT = 'ASSIGNMENT'
    EXPENDITURE = 'EXPENDITURE'


@dataclass(frozen=True)
class Movement:
    id: int
    date: datetime
    action_type: MovementAction
    equipment: str
    quantity: int
    base: str
    performed_by: str
    remarks: str

    def as_dict(self) -> dict:
        data = asdict(self)
        data['action_type'] = self.action_type.value
        return data


def parse_action_type(raw: MovementAction | str | None) -> MovementAction | None:
    if raw is None or isinstance(raw, MovementAction):
        return raw
    cleaned = str(raw).strip().upper()
    if not cleaned:
        return None
    try:
        return MovementAction(cleaned)
    except ValueError as exc:
        raise ValidationError(f'Unknown action type: {raw!r}') from exc


def _with_dates(query, column, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.where(column >= start)
    if end is not None:
        query = query.where(column <= end)
    return query


def _purchases(db: Session, scope: BaseScope, start, end) -> list[Movement]:
    query = (
        select(Purchase, Equipment.name, MilitaryBase.name, User.name, User.email)
        .join(Equipment, Equipment.id == Purchase.equipment_id)
        .join(MilitaryBase, MilitaryBase.id == Purchase.base_id)
        .join(User, User.id == Purchase.user_id)
    )
    if not scope.is_all:
        query = query.where(Purchase.base_id == scope.base_id)
    query = _with_dates(query, Purchase.date, start, end)
    return [
        Movement(
            id=purchase.id,
            date=purchase.date,
            action_type=MovementAction.PURCHASE,
            equipment=equipment_name,
            quantity=purchase.quantity,
            base=base_name,
            performed_by=user_name or user_email,
            remarks=f'Purchased {purchase.quantity} {equipment_name}',
        )
        for purchase, equipment_name, base_name, user_name, user_email in db.execute(query).all()
    ]


def _transfers(db: Session, scope: BaseScope, start, end) -> list[Movement]:
    from_base = aliased(MilitaryBase)
    to_base = aliased(MilitaryBase)
    query = (
        select(Transfer, Equipment.name, from_base.name, to_base.name)
        .join(Equipment, Equipment.id == Transfer.equipment_id)
        .join(from_base, from_base.id == Transfer.from_base_id)
        .join(to_base, to_base.id == Transfer.to_base_id)
        .where(Transfer.status == TransferStatus.COMPLETED)
    )
    if not scope.is_all:
        query = query.where(or_(Transfer.from_base_id == scope.base_id, Transfer.to_base_id == scope.base_id))
    query = _with_dates(query, Transfer.date, start, end)
    # No actor is stored on transfer records, so they are attributed to the system.
    return [
        Movement(
            id=transfer.id,
            date=transfer.date,
            action_type=MovementAction.TRANSFER,
            equipment=equipment_name,
            quantity=transfer.quantity,
            base=f'{from_name} → {to_name}',
            performed_by=TRANSFER_ACTOR,
            remarks=f'Transferred to {to_name}',
        )
        for transfer, equipment_name, from_name, to_name in db.execute(query).all()
    ]


def _assignments(db: Session, scope: BaseScope, start, end, kind: AssignmentType) -> list[Movement]:
    query = (
        select(Assignment, Equipment.name, MilitaryBase.name, User.name, User.email)
        .join(Equipment, Equipment.id == Assignment.equipment_id)
        .join(MilitaryBase, MilitaryBase.id == Assignment.base_id)
        .join(User, User.id == Assignment.user_id)
        .where(Assignment.type == kind)
    )
    if not scope.is_all:
        query = query.where(Assignment.base_id == scope.base_id)
    query = _with_dates(query, Assignment.date, start, end)

    movements: list[Movement] = []
    for assignment, equipment_name, base_name, user_name, user_email in db.execute(query).all():
        if kind == AssignmentType.ASSIGNED:
            action = MovementAction.ASSIGNMENT
            remarks = f'Assigned to {assignment.personnel_name}' if assignment.personnel_name else (assignment.reason or '')
        else:
            action = MovementAction.EXPENDITURE
            remarks = assignment.reason or ''
        movements.append(
            Movement(
                id=assignment.id,
                date=assignment.date,
                action_type=action,
                equipment=equipment_name,
                quantity=assignment.quantity,
                base=base_name,
                performed_by=user_name or user_email,
                remarks=remarks,
            )
        )
    return movements


def list_movements(
    db: Session,
    *,
    scope: BaseScope,
    action_type: MovementAction | str | None = None,
    from_date: datetime | date | str | None = None,
    to_date: datetime | date | str | None = None,
) -> list[Movement]:
    """Every stock movement visible in ``scope``, newest first."""
    action = parse_action_type(action_type)
    start = parse_period_start(from_date)
    end = parse_period_end(to_date)

    movements: list[Movement] = []
    if action in {None, MovementAction.PURCHASE}:
        movements.extend(_purchases(db, scope, start, end))
    if action in {None, MovementAction.TRANSFER}:
        movements.extend(_transfers(db, scope, start, end))
    if action in {None, MovementAction.ASSIGNMENT}:
        movements.extend(_assignments(db, scope, start, end, AssignmentType.ASSIGNED))
    if action in {None, MovementAction.EXPENDITURE}:
        movements.extend(_assignments(db, scope, start, end, AssignmentType.EXPENDED))

    movements.sort(key=lambda item: (item.date, item.action_type.value, item.id), reverse=True)
    return movements
