from __future__ import annotations

from dataclasses import dataclass

from armory.auth import Principal, Role
from armory.config import settings
from armory.errors import PermissionDenied, ValidationError


@dataclass(frozen=True)
class BaseScope:
    """Effective base visibility. ``base_id`` of None means every base."""

    base_id: int | None = None

    @property
    def is_all(self) -> bool:
        return self.base_id is None

    @classmethod
    def all_bases(cls) -> BaseScope:
        return cls(None)


def _own_base(principal: Principal) -> int:
    if principal.base_id is None:
        raise PermissionDenied(f'{principal.role.value} account is not assigned to a base')
    return principal.base_id


def resolve_read_scope(principal: Principal, requested_base_id: int | None = None) -> BaseScope:
    if principal.role == Role.BASE_COMMANDER:
        return BaseScope(_own_base(principal))
    if principal.role in {Role.ADMIN, Role.LOGISTICS_OFFICER}:
        return BaseScope(requested_base_id)
    raise ValidationError(f'Unknown role: {principal.role}')


def resolve_metrics_scope(principal: Principal, requested_base_id: int | None = None) -> BaseScope:
    # Dashboard balances are only unrestricted for administrators.
    if principal.role == Role.ADMIN:
        return BaseScope(requested_base_id)
    if principal.role in {Role.BASE_COMMANDER, Role.LOGISTICS_OFFICER}:
        return BaseScope(_own_base(principal))
    raise ValidationError(f'Unknown role: {principal.role}')


def resolve_purchase_base(principal: Principal, requested_base_id: int | None) -> int:
    if principal.role == Role.BASE_COMMANDER:
        raise PermissionDenied('Base Commander cannot create purchases')
    if requested_base_id is None:
        raise ValidationError('Base is required')
    if principal.role == Role.LOGISTICS_OFFICER and not settings.logistics_officer_purchase_any_base:
        if requested_base_id != _own_base(principal):
            raise PermissionDenied('Cannot purchase for another base')
    return requested_base_id


def resolve_transfer_source(principal: Principal, requested_from_base_id: int | None) -> int:
    if principal.role == Role.BASE_COMMANDER:
        raise PermissionDenied('Base Commander cannot create transfers')
    if principal.role == Role.LOGISTICS_OFFICER:
        own = _own_base(principal)
        if requested_from_base_id is not None and requested_from_base_id != own:
            raise PermissionDenied('Cannot transfer from another base')
        return own
    if requested_from_base_id is None:
        raise ValidationError('Source base is required')
    return requested_from_base_id


def resolve_assignment_base(principal: Principal, requested_base_id: int | None) -> int:
    if principal.role == Role.BASE_COMMANDER:
        raise PermissionDenied('Base Commander cannot create assignments')
    if principal.role == Role.LOGISTICS_OFFICER:
        return _own_base(principal)
    if principal.base_id is not None:
        return principal.base_id
    if requested_base_id is None:
        raise ValidationError('Base is required')
    return requested_base_id
