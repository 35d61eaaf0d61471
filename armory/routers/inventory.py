from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from armory.auth import Principal, Role, get_current_principal, require_role
from armory.db import get_db
from armory.dependencies import form_value
from armory.services.audit_service import list_audit_entries
from armory.services.base_service import create_base, list_bases
from armory.services.catalog_service import list_equipment
from armory.services.input_parsing import parse_optional_id
from armory.services.ledger_service import find_ledger_drift, list_inventory, rebuild_ledger
from armory.services.metrics_service import compute_metrics
from armory.services.movement_log_service import list_movements
from armory.services.scope_service import resolve_metrics_scope, resolve_read_scope

router = APIRouter(tags=['inventory'])


@router.get('/api/bases')
def bases_index(
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return [{'id': base.id, 'name': base.name, 'location': base.location} for base in list_bases(db)]


@router.post('/api/bases', status_code=status.HTTP_201_CREATED)
async def bases_create(
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    form = await request.form()
    base = create_base(db, principal=principal, name=form_value(form, 'name'), location=form_value(form, 'location'))
    return {'id': base.id, 'name': base.name, 'location': base.location}


@router.get('/api/equipment')
def equipment_index(
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return [{'id': item.id, 'name': item.name} for item in list_equipment(db)]


@router.get('/api/inventory')
def inventory_index(
    base_id: str | None = Query(None, alias='baseId'),
    equipment: str | None = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    scope = resolve_read_scope(principal, parse_optional_id(base_id, field='baseId'))
    return [asdict(row) for row in list_inventory(db, scope=scope, equipment_name=equipment)]


@router.get('/api/movement-logs')
def movement_logs_index(
    base_id: str | None = Query(None, alias='baseId'),
    action_type: str | None = Query(None, alias='actionType'),
    from_date: str | None = Query(None, alias='fromDate'),
    to_date: str | None = Query(None, alias='toDate'),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    scope = resolve_read_scope(principal, parse_optional_id(base_id, field='baseId'))
    movements = list_movements(db, scope=scope, action_type=action_type, from_date=from_date, to_date=to_date)
    return [movement.as_dict() for movement in movements]


@router.get('/metrics')
def metrics(
    base_id: str | None = Query(None, alias='baseId'),
    equipment: str | None = Query(None),
    from_date: str | None = Query(None, alias='fromDate'),
    to_date: str | None = Query(None, alias='toDate'),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    scope = resolve_metrics_scope(principal, parse_optional_id(base_id, field='baseId'))
    result = compute_metrics(db, scope=scope, from_date=from_date, to_date=to_date, equipment_name=equipment)
    return {'base_id': scope.base_id, **asdict(result)}


@router.get('/api/ledger/drift')
def ledger_drift(
    _: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return [asdict(item) for item in find_ledger_drift(db)]


@router.post('/api/ledger/rebuild')
def ledger_rebuild(
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return {'rows': rebuild_ledger(db, principal=principal)}


@router.get('/api/audit-log')
def audit_log_index(
    limit: int = Query(200),
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return [
        {
            'id': entry.id,
            'action': entry.action,
            'entity': entry.entity,
            'entity_id': entry.entity_id,
            'user_id': entry.user_id,
            'details': entry.details,
            'timestamp': entry.created_at,
        }
        for entry in list_audit_entries(db, principal=principal, limit=limit)
    ]
