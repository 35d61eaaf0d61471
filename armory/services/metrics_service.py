from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import Session

from armory.errors import ValidationError
from armory.models import Assignment, AssignmentType, Equipment, Purchase, Transfer, TransferStatus
from armory.services.input_parsing import parse_period_end, parse_period_start
from armory.services.scope_service import BaseScope

LedgerKey = tuple[int, int]


@dataclass(frozen=True)
class Metrics:
    opening_balance: int
    purchases: int
    transfers_in: int
    transfers_out: int
    assigned: int
    expended: int
    net_movement: int
    closing_balance: int


@dataclass
class MovementTotals:
    purchased: int = 0
    transferred_in: int = 0
    transferred_out: int = 0
    assigned: int = 0
    expended: int = 0

    @property
    def balance(self) -> int:
        return self.purchased + self.transferred_in - self.transferred_out - self.assigned - self.expended


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _equipment_criteria(model, equipment_name: str | None) -> list[ColumnElement]:
    if not equipment_name:
        return []
    return [model.equipment_id.in_(select(Equipment.id).where(Equipment.name == equipment_name))]


def _date_criteria(model, start: datetime | None, end: datetime | None, *, before: bool) -> list[ColumnElement]:
    if before:
        return [model.date < start]
    criteria = [model.date <= end]
    if start is not None:
        criteria.append(model.date >= start)
    return criteria


def _sum(db: Session, column, criteria: list[ColumnElement]) -> int:
    return int(db.execute(select(func.coalesce(func.sum(column), 0)).where(*criteria)).scalar_one())


def _window_sums(
    db: Session,
    *,
    scope: BaseScope,
    equipment_name: str | None,
    start: datetime | None,
    end: datetime | None,
    before: bool,
) -> MovementTotals:
    def purchase_criteria() -> list[ColumnElement]:
        criteria = _equipment_criteria(Purchase, equipment_name) + _date_criteria(Purchase, start, end, before=before)
        if not scope.is_all:
            criteria.append(Purchase.base_id == scope.base_id)
        return criteria

    def transfer_criteria(base_column) -> list[ColumnElement]:
        criteria = _equipment_criteria(Transfer, equipment_name) + _date_criteria(Transfer, start, end, before=before)
        criteria.append(Transfer.status == TransferStatus.COMPLETED)
        if not scope.is_all:
            criteria.append(base_column == scope.base_id)
        return criteria

    def assignment_criteria(kind: AssignmentType) -> list[ColumnElement]:
        criteria = _equipment_criteria(Assignment, equipment_name) + _date_criteria(Assignment, start, end, before=before)
        criteria.append(Assignment.type == kind)
        if not scope.is_all:
            criteria.append(Assignment.base_id == scope.base_id)
        return criteria

    return MovementTotals(
        purchased=_sum(db, Purchase.quantity, purchase_criteria()),
        transferred_in=_sum(db, Transfer.quantity, transfer_criteria(Transfer.to_base_id)),
        transferred_out=_sum(db, Transfer.quantity, transfer_criteria(Transfer.from_base_id)),
        assigned=_sum(db, Assignment.quantity, assignment_criteria(AssignmentType.ASSIGNED)),
        expended=_sum(db, Assignment.quantity, assignment_criteria(AssignmentType.EXPENDED)),
    )


def compute_metrics(
    db: Session,
    *,
    scope: BaseScope,
    from_date: datetime | date | str | None = None,
    to_date: datetime | date | str | None = None,
    equipment_name: str | None = None,
) -> Metrics:
    """Reconstruct balances for a reporting window from transaction history alone.

    The opening balance covers everything strictly before ``from_date``; the period
    sums cover ``[from_date, to_date]`` inclusive. A missing ``from_date`` means the
    beginning of history and a missing ``to_date`` means now. The cached ledger
    table is never consulted.
    """
    start = parse_period_start(from_date)
    end = parse_period_end(to_date) or _now()
    if start is not None and start > end:
        raise ValidationError('From date must not be after to date')
    equipment_name = (equipment_name or '').strip() or None

    if start is None:
        opening_balance = 0
    else:
        opening_balance = _window_sums(
            db, scope=scope, equipment_name=equipment_name, start=start, end=None, before=True
        ).balance

    period = _window_sums(db, scope=scope, equipment_name=equipment_name, start=start, end=end, before=False)
    net_movement = period.purchased + period.transferred_in - period.transferred_out
    return Metrics(
        opening_balance=opening_balance,
        purchases=period.purchased,
        transfers_in=period.transferred_in,
        transfers_out=period.transferred_out,
        assigned=period.assigned,
        expended=period.expended,
        net_movement=net_movement,
        closing_balance=opening_balance + net_movement - period.assigned - period.expended,
    )


def movement_totals_by_key(
    db: Session,
    *,
    scope: BaseScope | None = None,
    as_of: datetime | None = None,
) -> dict[LedgerKey, MovementTotals]:
    scope = scope or BaseScope.all_bases()
    totals: dict[LedgerKey, MovementTotals] = defaultdict(MovementTotals)

    purchase_stmt = select(Purchase.base_id, Purchase.equipment_id, func.sum(Purchase.quantity)).group_by(
        Purchase.base_id, Purchase.equipment_id
    )
    if not scope.is_all:
        purchase_stmt = purchase_stmt.where(Purchase.base_id == scope.base_id)
    if as_of is not None:
        purchase_stmt = purchase_stmt.where(Purchase.date <= as_of)
    for base_id, equipment_id, qty in db.execute(purchase_stmt).all():
        totals[(base_id, equipment_id)].purchased = int(qty or 0)

    for base_column, attr in ((Transfer.to_base_id, 'transferred_in'), (Transfer.from_base_id, 'transferred_out')):
        transfer_stmt = (
            select(base_column, Transfer.equipment_id, func.sum(Transfer.quantity))
            .where(Transfer.status == TransferStatus.COMPLETED)
            .group_by(base_column, Transfer.equipment_id)
        )
        if not scope.is_all:
            transfer_stmt = transfer_stmt.where(base_column == scope.base_id)
        if as_of is not None:
            transfer_stmt = transfer_stmt.where(Transfer.date <= as_of)
        for base_id, equipment_id, qty in db.execute(transfer_stmt).all():
            setattr(totals[(base_id, equipment_id)], attr, int(qty or 0))

    assignment_stmt = select(
        Assignment.base_id, Assignment.equipment_id, Assignment.type, func.sum(Assignment.quantity)
    ).group_by(Assignment.base_id, Assignment.equipment_id, Assignment.type)
    if not scope.is_all:
        assignment_stmt = assignment_stmt.where(Assignment.base_id == scope.base_id)
    if as_of is not None:
        assignment_stmt = assignment_stmt.where(Assignment.date <= as_of)
    for base_id, equipment_id, kind, qty in db.execute(assignment_stmt).all():
        if kind == AssignmentType.ASSIGNED:
            totals[(base_id, equipment_id)].assigned = int(qty or 0)
        else:
            totals[(base_id, equipment_id)].expended = int(qty or 0)

    return dict(totals)


def replay_quantities(db: Session, *, scope: BaseScope | None = None) -> dict[LedgerKey, int]:
    """Per-key stock derived from every recorded movement, independent of the ledger table."""
    return {key: item.balance for key, item in movement_totals_by_key(db, scope=scope).items()}
