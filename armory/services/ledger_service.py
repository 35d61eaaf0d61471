from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from armory.auth import Principal, Role
from armory.errors import InsufficientInventory, PermissionDenied
from armory.models import Equipment, InventoryEntry, MilitaryBase
from armory.services.audit_service import log_audit
from armory.services.metrics_service import LedgerKey, MovementTotals, movement_totals_by_key, replay_quantities
from armory.services.scope_service import BaseScope
from armory.services.unit_of_work import Step, apply_atomically

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryRow:
    base_id: int
    base_name: str
    equipment_id: int
    equipment_name: str
    quantity: int
    purchased: int
    transferred_in: int
    transferred_out: int
    assigned: int
    expended: int
    updated_at: datetime | None


@dataclass(frozen=True)
class LedgerDrift:
    base_id: int
    equipment_id: int
    cached_quantity: int
    derived_quantity: int


def get_quantity(db: Session, *, base_id: int, equipment_id: int) -> int:
    qty = db.execute(
        select(InventoryEntry.quantity).where(
            InventoryEntry.base_id == base_id,
            InventoryEntry.equipment_id == equipment_id,
        )
    ).scalar_one_or_none()
    return int(qty or 0)


def lock_entries(db: Session, keys: Iterable[LedgerKey]) -> dict[LedgerKey, int]:
    """Lock the ledger rows for ``keys`` and return their current quantities.

    Rows are locked one by one in (base_id, equipment_id) order so two requests touching
    the same pair of keys always queue in the same order. Absent rows read as 0.
    """
    quantities: dict[LedgerKey, int] = {}
    for base_id, equipment_id in sorted(set(keys)):
        qty = db.execute(
            select(InventoryEntry.quantity)
            .where(
                InventoryEntry.base_id == base_id,
                InventoryEntry.equipment_id == equipment_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        quantities[(base_id, equipment_id)] = int(qty or 0)
    return quantities


def _insert(db: Session):
    if db.get_bind().dialect.name == 'postgresql':
        return postgresql.insert
    return sqlite.insert


def adjust(db: Session, *, base_id: int, equipment_id: int, delta: int) -> None:
    if delta == 0:
        return

    table = InventoryEntry.__table__
    if delta > 0:
        stmt = _insert(db)(table).values(base_id=base_id, equipment_id=equipment_id, quantity=delta)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.base_id, table.c.equipment_id],
            set_={'quantity': table.c.quantity + stmt.excluded.quantity, 'updated_at': func.now()},
        )
        db.execute(stmt)
        return

    # Matches no row unless enough stock remains.
    result = db.execute(
        update(table)
        .where(
            table.c.base_id == base_id,
            table.c.equipment_id == equipment_id,
            table.c.quantity >= -delta,
        )
        .values(quantity=table.c.quantity + delta, updated_at=func.now())
    )
    if result.rowcount != 1:
        raise InsufficientInventory(
            available=get_quantity(db, base_id=base_id, equipment_id=equipment_id),
            requested=-delta,
        )


def require_available(db: Session, *, base_id: int, equipment_id: int, quantity: int) -> int:
    available = lock_entries(db, [(base_id, equipment_id)])[(base_id, equipment_id)]
    if available < quantity:
        raise InsufficientInventory(available=available, requested=quantity)
    return available


def list_inventory(db: Session, *, scope: BaseScope, equipment_name: str | None = None) -> list[InventoryRow]:
    stmt = (
        select(InventoryEntry, MilitaryBase.name, Equipment.name)
        .join(MilitaryBase, MilitaryBase.id == InventoryEntry.base_id)
        .join(Equipment, Equipment.id == InventoryEntry.equipment_id)
        .order_by(MilitaryBase.name.asc(), Equipment.name.asc())
    )
    if not scope.is_all:
        stmt = stmt.where(InventoryEntry.base_id == scope.base_id)
    equipment_name = (equipment_name or '').strip()
    if equipment_name:
        stmt = stmt.where(Equipment.name == equipment_name)
    rows = db.execute(stmt).all()
    if not rows:
        return []

    totals = movement_totals_by_key(db, scope=scope)
    result: list[InventoryRow] = []
    for entry, base_name, item_name in rows:
        moved = totals.get((entry.base_id, entry.equipment_id), MovementTotals())
        result.append(
            InventoryRow(
                base_id=entry.base_id,
                base_name=base_name,
                equipment_id=entry.equipment_id,
                equipment_name=item_name,
                quantity=entry.quantity,
                purchased=moved.purchased,
                transferred_in=moved.transferred_in,
                transferred_out=moved.transferred_out,
                assigned=moved.assigned,
                expended=moved.expended,
                updated_at=entry.updated_at,
            )
        )
    return result


def find_ledger_drift(db: Session, *, scope: BaseScope | None = None) -> list[LedgerDrift]:
    scope = scope or BaseScope.all_bases()
    stmt = select(InventoryEntry.base_id, InventoryEntry.equipment_id, InventoryEntry.quantity)
    if not scope.is_all:
        stmt = stmt.where(InventoryEntry.base_id == scope.base_id)
    cached = {(base_id, equipment_id): int(qty) for base_id, equipment_id, qty in db.execute(stmt).all()}
    derived = replay_quantities(db, scope=scope)

    drift: list[LedgerDrift] = []
    for key in sorted(set(cached) | set(derived)):
        cached_qty = cached.get(key, 0)
        derived_qty = derived.get(key, 0)
        if cached_qty != derived_qty:
            drift.append(LedgerDrift(base_id=key[0], equipment_id=key[1], cached_quantity=cached_qty, derived_quantity=derived_qty))
    return drift


def _lock_ledger_table(db: Session) -> None:
    # Blocks concurrent upserts, including ones that would create new keys, until commit.
    if db.get_bind().dialect.name == 'postgresql':
        db.execute(text(f'LOCK TABLE {InventoryEntry.__tablename__} IN EXCLUSIVE MODE'))


def rebuild_ledger(db: Session, *, principal: Principal) -> int:
    """Discard the cached ledger and recompute it from transaction history.

    Returns the number of rows written.
    """
    if principal.role != Role.ADMIN:
        raise PermissionDenied('Only admins can rebuild the inventory ledger')

    def _recompute(tx: Session, _results) -> int:
        _lock_ledger_table(tx)
        derived = replay_quantities(tx)
        tx.execute(delete(InventoryEntry.__table__))
        rows = [
            {'base_id': base_id, 'equipment_id': equipment_id, 'quantity': qty}
            for (base_id, equipment_id), qty in sorted(derived.items())
        ]
        if rows:
            tx.execute(InventoryEntry.__table__.insert(), rows)
        return len(rows)

    def _audit(tx: Session, results) -> None:
        log_audit(
            tx,
            action='REBUILD_LEDGER',
            entity='InventoryEntry',
            entity_id=None,
            user_id=principal.id,
            details=f'Rebuilt {results["recompute"]} ledger rows from transaction history',
        )

    results = apply_atomically(db, [Step('recompute', _recompute), Step('audit', _audit)])
    logger.info('Ledger rebuilt', extra={'rows': results['recompute'], 'user_id': principal.id})
    return results['recompute']
