from __future__ import annotations

import unittest
from unittest.mock import patch

from armory.auth import Principal, Role
from armory.config import settings
from armory.errors import PermissionDenied, ValidationError
from armory.services.scope_service import (
    BaseScope,
    resolve_assignment_base,
    resolve_metrics_scope,
    resolve_purchase_base,
    resolve_read_scope,
    resolve_transfer_source,
)

ADMIN = Principal(id=1, role=Role.ADMIN)
OFFICER = Principal(id=2, role=Role.LOGISTICS_OFFICER, base_id=10)
COMMANDER = Principal(id=3, role=Role.BASE_COMMANDER, base_id=10)


class ReadScopeTests(unittest.TestCase):
    def test_admin_and_officer_see_requested_base_or_everything(self) -> None:
        for principal in (ADMIN, OFFICER):
            with self.subTest(role=principal.role):
                self.assertTrue(resolve_read_scope(principal, None).is_all)
                self.assertEqual(resolve_read_scope(principal, 20), BaseScope(20))

    def test_commander_is_pinned_to_own_base(self) -> None:
        self.assertEqual(resolve_read_scope(COMMANDER, None), BaseScope(10))
        self.assertEqual(resolve_read_scope(COMMANDER, 20), BaseScope(10))

    def test_commander_without_base_is_denied(self) -> None:
        with self.assertRaises(PermissionDenied):
            resolve_read_scope(Principal(id=4, role=Role.BASE_COMMANDER), None)

    def test_metrics_scope_only_unrestricted_for_admin(self) -> None:
        self.assertEqual(resolve_metrics_scope(ADMIN, 20), BaseScope(20))
        self.assertTrue(resolve_metrics_scope(ADMIN, None).is_all)
        self.assertEqual(resolve_metrics_scope(OFFICER, 20), BaseScope(10))
        self.assertEqual(resolve_metrics_scope(COMMANDER, None), BaseScope(10))


class WriteScopeTests(unittest.TestCase):
    def test_purchase(self) -> None:
        self.assertEqual(resolve_purchase_base(ADMIN, 20), 20)
        self.assertEqual(resolve_purchase_base(OFFICER, 20), 20)
        with self.assertRaises(PermissionDenied):
            resolve_purchase_base(COMMANDER, 10)
        with self.assertRaises(ValidationError):
            resolve_purchase_base(ADMIN, None)

    def test_purchase_restricted_mode(self) -> None:
        with patch.object(settings, 'logistics_officer_purchase_any_base', False):
            self.assertEqual(resolve_purchase_base(OFFICER, 10), 10)
            with self.assertRaises(PermissionDenied):
                resolve_purchase_base(OFFICER, 20)
            self.assertEqual(resolve_purchase_base(ADMIN, 20), 20)

    def test_transfer_source(self) -> None:
        self.assertEqual(resolve_transfer_source(ADMIN, 20), 20)
        self.assertEqual(resolve_transfer_source(OFFICER, None), 10)
        self.assertEqual(resolve_transfer_source(OFFICER, 10), 10)
        with self.assertRaises(PermissionDenied):
            resolve_transfer_source(OFFICER, 20)
        with self.assertRaises(PermissionDenied):
            resolve_transfer_source(COMMANDER, 10)
        with self.assertRaises(ValidationError):
            resolve_transfer_source(ADMIN, None)

    def test_assignment_base(self) -> None:
        self.assertEqual(resolve_assignment_base(ADMIN, 20), 20)
        self.assertEqual(resolve_assignment_base(OFFICER, 20), 10)
        with self.assertRaises(PermissionDenied):
            resolve_assignment_base(COMMANDER, 10)
        with self.assertRaises(ValidationError):
            resolve_assignment_base(ADMIN, None)
        with self.assertRaises(PermissionDenied):
            resolve_assignment_base(Principal(id=5, role=Role.LOGISTICS_OFFICER), 20)


if __name__ == '__main__':
    unittest.main()
