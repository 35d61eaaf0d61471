from __future__ import annotations

import unittest

from armory.errors import ValidationError
from armory.models import UserRole
from armory.services.movement_log_service import MovementAction, list_movements
from armory.services.scope_service import BaseScope
from armory.services.transaction_service import create_assignment, create_purchase, create_transfer
from ledger_fixtures import add_base, add_user, make_session_factory


class MovementLogServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.alpha = add_base(self.db, 'Fort Alpha')
        self.bravo = add_base(self.db, 'Fort Bravo')
        self.charlie = add_base(self.db, 'Fort Charlie')
        self.admin = add_user(self.db, 'admin@army.mil', UserRole.ADMIN, name='General Admin')

        create_purchase(
            self.db, principal=self.admin, base_id=self.alpha.id, equipment_name='Rifles', quantity=30, date='2024-01-01'
        )
        create_transfer(
            self.db,
            principal=self.admin,
            from_base_id=self.alpha.id,
            to_base_id=self.bravo.id,
            equipment_name='Rifles',
            quantity=10,
            date='2024-01-02',
        )
        create_assignment(
            self.db,
            principal=self.admin,
            base_id=self.alpha.id,
            equipment_name='Rifles',
            quantity=4,
            assignment_type='ASSIGNED',
            personnel_name='Sgt. Rivera',
            reason=None,
            date='2024-01-03',
        )
        create_assignment(
            self.db,
            principal=self.admin,
            base_id=self.bravo.id,
            equipment_name='Rifles',
            quantity=2,
            assignment_type='EXPENDED',
            personnel_name=None,
            reason='Training',
            date='2024-01-04',
        )

    def tearDown(self) -> None:
        self.db.close()

    def test_union_sorted_newest_first(self) -> None:
        movements = list_movements(self.db, scope=BaseScope.all_bases())

        self.assertEqual(
            [movement.action_type for movement in movements],
            [MovementAction.EXPENDITURE, MovementAction.ASSIGNMENT, MovementAction.TRANSFER, MovementAction.PURCHASE],
        )
        expenditure, assignment, transfer, purchase = movements
        self.assertEqual(transfer.base, 'Fort Alpha → Fort Bravo')
        self.assertEqual(transfer.performed_by, 'System')
        self.assertEqual(transfer.remarks, 'Transferred to Fort Bravo')
        self.assertEqual(assignment.remarks, 'Assigned to Sgt. Rivera')
        self.assertEqual(assignment.base, 'Fort Alpha')
        self.assertEqual(expenditure.remarks, 'Training')
        self.assertEqual(purchase.performed_by, 'General Admin')
        self.assertEqual(purchase.remarks, 'Purchased 30 Rifles')
        self.assertEqual(purchase.as_dict()['action_type'], 'PURCHASE')

    def test_scope_action_and_date_filters(self) -> None:
        bravo = list_movements(self.db, scope=BaseScope(self.bravo.id))
        self.assertEqual([m.action_type for m in bravo], [MovementAction.EXPENDITURE, MovementAction.TRANSFER])

        self.assertEqual(list_movements(self.db, scope=BaseScope(self.charlie.id)), [])

        transfers = list_movements(self.db, scope=BaseScope.all_bases(), action_type='transfer')
        self.assertEqual(len(transfers), 1)

        window = list_movements(self.db, scope=BaseScope.all_bases(), from_date='2024-01-02', to_date='2024-01-03')
        self.assertEqual(
            [m.action_type for m in window],
            [MovementAction.ASSIGNMENT, MovementAction.TRANSFER],
        )

    def test_unknown_action_type(self) -> None:
        with self.assertRaises(ValidationError):
            list_movements(self.db, scope=BaseScope.all_bases(), action_type='LOAN')


if __name__ == '__main__':
    unittest.main()
