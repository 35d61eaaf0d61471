from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from armory.auth import Principal, Role, require_role
from armory.db import get_db
from armory.dependencies import form_value
from armory.services.user_service import create_user, delete_user, list_users, serialize_user, update_user

router = APIRouter(prefix='/api/users', tags=['users'])


@router.get('')
def users_index(
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return list_users(db, principal=principal)


@router.post('', status_code=status.HTTP_201_CREATED)
async def users_create(
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    form = await request.form()
    user = create_user(
        db,
        principal=principal,
        email=form_value(form, 'email'),
        password=form_value(form, 'password'),
        name=form_value(form, 'name'),
        role=form_value(form, 'role'),
        base_id=form_value(form, 'baseId'),
    )
    return serialize_user(user)


@router.put('/{user_id}')
async def users_update(
    user_id: int,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    form = await request.form()
    changes = {}
    if 'name' in form:
        changes['name'] = form_value(form, 'name')
    if 'baseId' in form:
        changes['base_id'] = form_value(form, 'baseId')
    if 'active' in form:
        changes['active'] = str(form.get('active')).strip().lower() in {'1', 'true', 'on', 'yes'}
    user = update_user(
        db,
        principal=principal,
        user_id=user_id,
        email=form_value(form, 'email'),
        password=form_value(form, 'password'),
        role=form_value(form, 'role'),
        **changes,
    )
    return serialize_user(user)


@router.delete('/{user_id}')
def users_delete(
    user_id: int,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    delete_user(db, principal=principal, user_id=user_id)
    return {'message': 'User deleted successfully'}
