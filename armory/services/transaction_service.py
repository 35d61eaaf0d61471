from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, aliased

from armory.auth import Principal
from armory.errors import InsufficientInventory, NotFound, ValidationError
from armory.models import (
    Assignment,
    AssignmentType,
    Equipment,
    MilitaryBase,
    Purchase,
    Transfer,
    TransferStatus,
    User,
)
from armory.services import ledger_service
from armory.services.audit_service import log_audit
from armory.services.catalog_service import get_equipment_by_name, normalize_equipment_name, resolve_or_create_equipment
from armory.services.input_parsing import clean_text, parse_datetime, parse_id, parse_optional_id, parse_quantity
from armory.services.scope_service import (
    resolve_assignment_base,
    resolve_purchase_base,
    resolve_read_scope,
    resolve_transfer_source,
)
from armory.services.unit_of_work import Step, apply_atomically

logger = logging.getLogger(__name__)

RawId = int | str | None
RawDate = datetime | date | str | None


def _ensure_base(db: Session, base_id: int, *, label: str = 'Base') -> MilitaryBase:
    base = db.get(MilitaryBase, base_id)
    if not base:
        raise NotFound(f'{label} not found')
    return base


def parse_assignment_type(raw: AssignmentType | str | None) -> AssignmentType:
    if isinstance(raw, AssignmentType):
        return raw
    try:
        return AssignmentType(str(raw or '').strip().upper())
    except ValueError as exc:
        raise ValidationError(f'Invalid assignment type: {raw!r}') from exc


def create_purchase(
    db: Session,
    *,
    principal: Principal,
    base_id: RawId,
    equipment_name: str | None,
    quantity: int | str | None,
    date: RawDate,
) -> Purchase:
    target_base_id = resolve_purchase_base(principal, parse_optional_id(base_id, field='baseId'))
    qty = parse_quantity(quantity)
    when = parse_datetime(date)
    name = normalize_equipment_name(equipment_name)

    def _record(tx: Session, results) -> Purchase:
        purchase = Purchase(
            base_id=target_base_id,
            equipment_id=results['equipment'].id,
            user_id=principal.id,
            quantity=qty,
            date=when,
        )
        tx.add(purchase)
        tx.flush()
        return purchase

    def _audit(tx: Session, results) -> None:
        log_audit(
            tx,
            action='PURCHASE',
            entity='Purchase',
            entity_id=results['record'].id,
            user_id=principal.id,
            details=f'Purchased {qty} {name} for base {results["base"].name}',
        )

    results = apply_atomically(
        db,
        [
            Step('base', lambda tx, _: _ensure_base(tx, target_base_id)),
            Step('equipment', lambda tx, _: resolve_or_create_equipment(tx, name)),
            Step('record', _record),
            Step(
                'ledger',
                lambda tx, r: ledger_service.adjust(
                    tx, base_id=target_base_id, equipment_id=r['equipment'].id, delta=qty
                ),
            ),
            Step('audit', _audit),
        ],
    )
    purchase = results['record']
    logger.info(
        'Purchase recorded',
        extra={'purchase_id': purchase.id, 'base_id': target_base_id, 'equipment': name, 'quantity': qty},
    )
    return purchase


def create_transfer(
    db: Session,
    *,
    principal: Principal,
    from_base_id: RawId,
    to_base_id: RawId,
    equipment_name: str | None,
    quantity: int | str | None,
    date: RawDate,
) -> Transfer:
    source_id = resolve_transfer_source(principal, parse_optional_id(from_base_id, field='fromBaseId'))
    destination_id = parse_id(to_base_id, field='toBaseId')
    if source_id == destination_id:
        raise ValidationError('Source and destination bases must differ')
    qty = parse_quantity(quantity)
    when = parse_datetime(date)
    name = normalize_equipment_name(equipment_name)

    def _bases(tx: Session, _results) -> tuple[MilitaryBase, MilitaryBase]:
        return _ensure_base(tx, source_id, label='Source base'), _ensure_base(tx, destination_id, label='Destination base')

    def _check_stock(tx: Session, results) -> int:
        equipment_id = results['equipment'].id
        quantities = ledger_service.lock_entries(tx, [(source_id, equipment_id), (destination_id, equipment_id)])
        available = quantities[(source_id, equipment_id)]
        if available < qty:
            raise InsufficientInventory(available=available, requested=qty)
        return available

    def _record(tx: Session, results) -> Transfer:
        transfer = Transfer(
            from_base_id=source_id,
            to_base_id=destination_id,
            equipment_id=results['equipment'].id,
            quantity=qty,
            date=when,
            status=TransferStatus.COMPLETED,
        )
        tx.add(transfer)
        tx.flush()
        return transfer

    def _move(tx: Session, results) -> None:
        equipment_id = results['equipment'].id
        ledger_service.adjust(tx, base_id=source_id, equipment_id=equipment_id, delta=-qty)
        ledger_service.adjust(tx, base_id=destination_id, equipment_id=equipment_id, delta=qty)

    def _audit(tx: Session, results) -> None:
        source, destination = results['bases']
        log_audit(
            tx,
            action='TRANSFER',
            entity='Transfer',
            entity_id=results['record'].id,
            user_id=principal.id,
            details=f'Transferred {qty} {name} from {source.name} to {destination.name}',
        )

    results = apply_atomically(
        db,
        [
            Step('bases', _bases),
            Step('equipment', lambda tx, _: get_equipment_by_name(tx, name)),
            Step('stock', _check_stock),
            Step('record', _record),
            Step('ledger', _move),
            Step('audit', _audit),
        ],
    )
    transfer = results['record']
    logger.info(
        'Transfer recorded',
        extra={
            'transfer_id': transfer.id,
            'from_base_id': source_id,
            'to_base_id': destination_id,
            'equipment': name,
            'quantity': qty,
        },
    )
    return transfer


def create_assignment(
    db: Session,
    *,
    principal: Principal,
    base_id: RawId,
    equipment_name: str | None,
    quantity: int | str | None,
    assignment_type: AssignmentType | str | None,
    personnel_name: str | None,
    reason: str | None,
    date: RawDate,
) -> Assignment:
    target_base_id = resolve_assignment_base(principal, parse_optional_id(base_id, field='baseId'))
    kind = parse_assignment_type(assignment_type)
    personnel = clean_text(personnel_name)
    if kind == AssignmentType.ASSIGNED and not personnel:
        raise ValidationError('Personnel name is required for assignments')
    note = clean_text(reason)
    qty = parse_quantity(quantity)
    when = parse_datetime(date)
    name = normalize_equipment_name(equipment_name)

    def _check_stock(tx: Session, results) -> int:
        return ledger_service.require_available(
            tx, base_id=target_base_id, equipment_id=results['equipment'].id, quantity=qty
        )

    def _record(tx: Session, results) -> Assignment:
        assignment = Assignment(
            user_id=principal.id,
            base_id=target_base_id,
            equipment_id=results['equipment'].id,
            quantity=qty,
            type=kind,
            personnel_name=personnel,
            reason=note,
            date=when,
        )
        tx.add(assignment)
        tx.flush()
        return assignment

    def _audit(tx: Session, results) -> None:
        details = f'{kind.value} {qty} {name}'
        if personnel:
            details += f' to {personnel}'
        if note:
            details += f'. Reason: {note}'
        log_audit(
            tx,
            action=kind.value,
            entity='Assignment',
            entity_id=results['record'].id,
            user_id=principal.id,
            details=details,
        )

    results = apply_atomically(
        db,
        [
            Step('base', lambda tx, _: _ensure_base(tx, target_base_id)),
            Step('equipment', lambda tx, _: get_equipment_by_name(tx, name)),
            Step('stock', _check_stock),
            Step('record', _record),
            Step(
                'ledger',
                lambda tx, r: ledger_service.adjust(
                    tx, base_id=target_base_id, equipment_id=r['equipment'].id, delta=-qty
                ),
            ),
            Step('audit', _audit),
        ],
    )
    assignment = results['record']
    logger.info(
        'Assignment recorded',
        extra={
            'assignment_id': assignment.id,
            'base_id': target_base_id,
            'equipment': name,
            'quantity': qty,
            'assignment_type': kind.value,
        },
    )
    return assignment


def list_purchases(
    db: Session,
    *,
    principal: Principal,
    base_id: RawId = None,
    equipment_name: str | None = None,
) -> list[dict]:
    scope = resolve_read_scope(principal, parse_optional_id(base_id, field='baseId'))
    query = (
        select(
            Purchase.id,
            Purchase.quantity,
            Purchase.date,
            Purchase.base_id,
            MilitaryBase.name.label('base_name'),
            Equipment.name.label('equipment_name'),
            User.email.label('user_email'),
            User.name.label('user_name'),
        )
        .join(MilitaryBase, MilitaryBase.id == Purchase.base_id)
        .join(Equipment, Equipment.id == Purchase.equipment_id)
        .join(User, User.id == Purchase.user_id)
        .order_by(Purchase.date.desc(), Purchase.id.desc())
    )
    if not scope.is_all:
        query = query.where(Purchase.base_id == scope.base_id)
    if equipment_name:
        query = query.where(Equipment.name == equipment_name.strip())

    return [
        {
            'id': row.id,
            'date': row.date,
            'base_id': row.base_id,
            'base': row.base_name,
            'equipment': row.equipment_name,
            'quantity': row.quantity,
            'purchased_by': row.user_name or row.user_email,
        }
        for row in db.execute(query).all()
    ]


def list_transfers(
    db: Session,
    *,
    principal: Principal,
    base_id: RawId = None,
    equipment_name: str | None = None,
) -> list[dict]:
    scope = resolve_read_scope(principal, parse_optional_id(base_id, field='baseId'))
    from_base = aliased(MilitaryBase)
    to_base = aliased(MilitaryBase)
    query = (
        select(
            Transfer.id,
            Transfer.quantity,
            Transfer.date,
            Transfer.status,
            Transfer.from_base_id,
            Transfer.to_base_id,
            from_base.name.label('from_base_name'),
            to_base.name.label('to_base_name'),
            Equipment.name.label('equipment_name'),
        )
        .join(from_base, from_base.id == Transfer.from_base_id)
        .join(to_base, to_base.id == Transfer.to_base_id)
        .join(Equipment, Equipment.id == Transfer.equipment_id)
        .order_by(Transfer.date.desc(), Transfer.id.desc())
    )
    if not scope.is_all:
        query = query.where(or_(Transfer.from_base_id == scope.base_id, Transfer.to_base_id == scope.base_id))
    if equipment_name:
        query = query.where(Equipment.name == equipment_name.strip())

    return [
        {
            'id': row.id,
            'date': row.date,
            'status': row.status.value if hasattr(row.status, 'value') else str(row.status),
            'from_base_id': row.from_base_id,
            'from_base': row.from_base_name,
            'to_base_id': row.to_base_id,
            'to_base': row.to_base_name,
            'equipment': row.equipment_name,
            'quantity': row.quantity,
        }
        for row in db.execute(query).all()
    ]


def list_assignments(
    db: Session,
    *,
    principal: Principal,
    base_id: RawId = None,
    equipment_name: str | None = None,
) -> list[dict]:
    scope = resolve_read_scope(principal, parse_optional_id(base_id, field='baseId'))
    query = (
        select(
            Assignment.id,
            Assignment.quantity,
            Assignment.date,
            Assignment.type,
            Assignment.personnel_name,
            Assignment.reason,
            Assignment.base_id,
            MilitaryBase.name.label('base_name'),
            Equipment.name.label('equipment_name'),
            User.email.label('user_email'),
            User.name.label('user_name'),
        )
        .join(MilitaryBase, MilitaryBase.id == Assignment.base_id)
        .join(Equipment, Equipment.id == Assignment.equipment_id)
        .join(User, User.id == Assignment.user_id)
        .order_by(Assignment.date.desc(), Assignment.id.desc())
    )
    if not scope.is_all:
        query = query.where(Assignment.base_id == scope.base_id)
    if equipment_name:
        query = query.where(Equipment.name == equipment_name.strip())

    return [
        {
            'id': row.id,
            'date': row.date,
            'type': row.type.value if hasattr(row.type, 'value') else str(row.type),
            'base_id': row.base_id,
            'base': row.base_name,
            'equipment': row.equipment_name,
            'quantity': row.quantity,
            'personnel_name': row.personnel_name,
            'reason': row.reason,
            'recorded_by': row.user_name or row.user_email,
        }
        for row in db.execute(query).all()
    ]
