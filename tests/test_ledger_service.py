from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from sqlalchemy import select, update

from armory.errors import InsufficientInventory, PermissionDenied
from armory.models import AuditLog, Equipment, InventoryEntry, UserRole
from armory.services import catalog_service, ledger_service
from armory.services.catalog_service import resolve_or_create_equipment
from armory.services.ledger_service import (
    _lock_ledger_table,
    adjust,
    find_ledger_drift,
    get_quantity,
    list_inventory,
    lock_entries,
    rebuild_ledger,
    require_available,
)
from armory.services.scope_service import BaseScope
from armory.services.transaction_service import create_assignment, create_purchase, create_transfer
from ledger_fixtures import add_base, add_user, make_session_factory


class LedgerServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.alpha = add_base(self.db, 'Fort Alpha')
        self.bravo = add_base(self.db, 'Fort Bravo')
        self.admin = add_user(self.db, 'admin@army.mil', UserRole.ADMIN)
        self.commander = add_user(self.db, 'commander@army.mil', UserRole.BASE_COMMANDER, self.alpha.id)
        self.rifles = Equipment(name='Rifles')
        self.db.add(self.rifles)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_quantity_defaults_to_zero(self) -> None:
        self.assertEqual(get_quantity(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id), 0)
        self.assertEqual(lock_entries(self.db, [(self.alpha.id, self.rifles.id)]), {(self.alpha.id, self.rifles.id): 0})

    def test_adjust_upserts_and_accumulates(self) -> None:
        adjust(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, delta=7)
        adjust(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, delta=5)
        adjust(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, delta=-4)
        self.db.commit()

        self.assertEqual(get_quantity(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id), 8)
        rows = self.db.execute(select(InventoryEntry)).scalars().all()
        self.assertEqual(len(rows), 1)

    def test_guarded_decrement_never_goes_negative(self) -> None:
        adjust(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, delta=3)
        with self.assertRaises(InsufficientInventory) as ctx:
            adjust(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, delta=-4)
        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(get_quantity(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id), 3)

        with self.assertRaises(InsufficientInventory):
            adjust(self.db, base_id=self.bravo.id, equipment_id=self.rifles.id, delta=-1)

    def test_require_available(self) -> None:
        adjust(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, delta=3)
        self.assertEqual(require_available(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, quantity=3), 3)
        with self.assertRaises(InsufficientInventory):
            require_available(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id, quantity=4)

    def test_list_inventory_is_scoped_and_enriched(self) -> None:
        create_purchase(
            self.db, principal=self.admin, base_id=self.alpha.id, equipment_name='Rifles', quantity=12, date='2024-03-01'
        )
        create_transfer(
            self.db,
            principal=self.admin,
            from_base_id=self.alpha.id,
            to_base_id=self.bravo.id,
            equipment_name='Rifles',
            quantity=5,
            date='2024-03-02',
        )
        create_assignment(
            self.db,
            principal=self.admin,
            base_id=self.alpha.id,
            equipment_name='Rifles',
            quantity=2,
            assignment_type='EXPENDED',
            personnel_name=None,
            reason='Qualification range',
            date='2024-03-03',
        )

        rows = list_inventory(self.db, scope=BaseScope.all_bases())
        self.assertEqual([(row.base_name, row.quantity) for row in rows], [('Fort Alpha', 5), ('Fort Bravo', 5)])
        alpha = rows[0]
        self.assertEqual((alpha.purchased, alpha.transferred_out, alpha.expended), (12, 5, 2))

        scoped = list_inventory(self.db, scope=BaseScope(self.bravo.id))
        self.assertEqual(len(scoped), 1)
        self.assertEqual(scoped[0].transferred_in, 5)
        self.assertEqual(list_inventory(self.db, scope=BaseScope.all_bases(), equipment_name='Radios'), [])
        padded = list_inventory(self.db, scope=BaseScope.all_bases(), equipment_name='  Rifles ')
        self.assertEqual([row.base_name for row in padded], ['Fort Alpha', 'Fort Bravo'])

    def test_drift_detection_and_rebuild(self) -> None:
        create_purchase(
            self.db, principal=self.admin, base_id=self.alpha.id, equipment_name='Rifles', quantity=9, date='2024-03-01'
        )
        create_transfer(
            self.db,
            principal=self.admin,
            from_base_id=self.alpha.id,
            to_base_id=self.bravo.id,
            equipment_name='Rifles',
            quantity=4,
            date='2024-03-02',
        )
        self.assertEqual(find_ledger_drift(self.db), [])

        self.db.execute(
            update(InventoryEntry)
            .where(InventoryEntry.base_id == self.alpha.id)
            .values(quantity=100)
        )
        self.db.commit()
        drift = find_ledger_drift(self.db)
        self.assertEqual(len(drift), 1)
        self.assertEqual((drift[0].cached_quantity, drift[0].derived_quantity), (100, 5))

        with self.assertRaises(PermissionDenied):
            rebuild_ledger(self.db, principal=self.commander)

        self.assertEqual(rebuild_ledger(self.db, principal=self.admin), 2)
        self.assertEqual(find_ledger_drift(self.db), [])
        self.assertEqual(get_quantity(self.db, base_id=self.alpha.id, equipment_id=self.rifles.id), 5)
        self.assertEqual(get_quantity(self.db, base_id=self.bravo.id, equipment_id=self.rifles.id), 4)
        actions = self.db.execute(select(AuditLog.action)).scalars().all()
        self.assertIn('REBUILD_LEDGER', actions)


    def test_rebuild_locks_the_ledger_before_replaying_history(self) -> None:
        create_purchase(
            self.db, principal=self.admin, base_id=self.alpha.id, equipment_name='Rifles', quantity=6, date='2024-03-01'
        )
        calls = []
        real_replay = ledger_service.replay_quantities

        def recording_replay(db, **kwargs):
            calls.append('replay')
            return real_replay(db, **kwargs)

        with patch(
            'armory.services.ledger_service._lock_ledger_table', side_effect=lambda db: calls.append('lock')
        ), patch('armory.services.ledger_service.replay_quantities', side_effect=recording_replay):
            self.assertEqual(rebuild_ledger(self.db, principal=self.admin), 1)

        self.assertEqual(calls, ['lock', 'replay'])

    def test_ledger_table_lock_is_taken_on_postgresql_only(self) -> None:
        postgres_session = MagicMock()
        postgres_session.get_bind.return_value.dialect.name = 'postgresql'
        _lock_ledger_table(postgres_session)
        statement = postgres_session.execute.call_args.args[0]
        self.assertEqual(str(statement), 'LOCK TABLE inventory_entries IN EXCLUSIVE MODE')

        sqlite_session = MagicMock()
        sqlite_session.get_bind.return_value.dialect.name = 'sqlite'
        _lock_ledger_table(sqlite_session)
        sqlite_session.execute.assert_not_called()

class CatalogServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_resolve_or_create_is_idempotent(self) -> None:
        first = resolve_or_create_equipment(self.db, 'Night Vision Goggles')
        second = resolve_or_create_equipment(self.db, ' Night Vision Goggles ')
        self.db.commit()
        self.assertEqual(first.id, second.id)

    def test_unique_violation_on_create_is_retried_as_fetch(self) -> None:
        existing = Equipment(name='Radios')
        self.db.add(existing)
        self.db.commit()

        real_find = catalog_service.find_equipment
        calls = []

        def racing_find(db, name):
            calls.append(name)
            # First lookup misses, as if another request inserted the row just after it.
            if len(calls) == 1:
                return None
            return real_find(db, name)

        with patch('armory.services.catalog_service.find_equipment', side_effect=racing_find):
            resolved = resolve_or_create_equipment(self.db, 'Radios')

        self.assertEqual(resolved.id, existing.id)
        self.assertEqual(len(calls), 2)
        self.db.commit()
        self.assertEqual(len(self.db.execute(select(Equipment)).scalars().all()), 1)


if __name__ == '__main__':
    unittest.main()
