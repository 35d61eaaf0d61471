from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from armory.auth import Principal, get_current_principal
from armory.db import get_db
from armory.dependencies import form_value
from armory.services.transaction_service import (
    create_assignment,
    create_purchase,
    create_transfer,
    list_assignments,
    list_purchases,
    list_transfers,
)

router = APIRouter(prefix='/api', tags=['transactions'])


@router.get('/purchases')
def purchases_index(
    base_id: str | None = Query(None, alias='baseId'),
    equipment: str | None = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_purchases(db, principal=principal, base_id=base_id, equipment_name=equipment)


@router.post('/purchases', status_code=status.HTTP_201_CREATED)
async def purchases_create(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    form = await request.form()
    purchase = create_purchase(
        db,
        principal=principal,
        base_id=form_value(form, 'baseId'),
        equipment_name=form_value(form, 'equipmentName'),
        quantity=form_value(form, 'quantity'),
        date=form_value(form, 'date'),
    )
    return {'message': 'Purchase created successfully', 'id': purchase.id}


@router.get('/transfers')
def transfers_index(
    base_id: str | None = Query(None, alias='baseId'),
    equipment: str | None = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_transfers(db, principal=principal, base_id=base_id, equipment_name=equipment)


@router.post('/transfers', status_code=status.HTTP_201_CREATED)
async def transfers_create(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    form = await request.form()
    transfer = create_transfer(
        db,
        principal=principal,
        from_base_id=form_value(form, 'fromBaseId'),
        to_base_id=form_value(form, 'toBaseId'),
        equipment_name=form_value(form, 'equipmentName'),
        quantity=form_value(form, 'quantity'),
        date=form_value(form, 'date'),
    )
    return {'message': 'Transfer created successfully', 'id': transfer.id}


@router.get('/assignments')
def assignments_index(
    base_id: str | None = Query(None, alias='baseId'),
    equipment: str | None = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_assignments(db, principal=principal, base_id=base_id, equipment_name=equipment)


@router.post('/assignments', status_code=status.HTTP_201_CREATED)
async def assignments_create(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    form = await request.form()
    assignment = create_assignment(
        db,
        principal=principal,
        base_id=form_value(form, 'baseId'),
        equipment_name=form_value(form, 'equipmentName'),
        quantity=form_value(form, 'quantity'),
        assignment_type=form_value(form, 'type'),
        personnel_name=form_value(form, 'personnelName'),
        reason=form_value(form, 'reason'),
        date=form_value(form, 'date'),
    )
    return {'message': 'Assignment created successfully', 'id': assignment.id}
