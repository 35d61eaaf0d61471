from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from armory.auth import Principal, get_current_principal
from armory.config import settings
from armory.db import get_db
from armory.dependencies import get_client_ip
from armory.models import User
from armory.security.passwords import verify_password
from armory.security.sessions import create_web_session, revoke_web_session
from armory.services.audit_service import log_audit, log_auth_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/auth', tags=['auth'])


def _principal_payload(principal: Principal) -> dict:
    return {
        'id': principal.id,
        'email': principal.email,
        'role': principal.role.value,
        'base_id': principal.base_id,
    }


@router.post('/login')
async def login_submit(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    email = str(form.get('email', '')).strip().lower()
    password = str(form.get('password', ''))
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    failure_reason = None
    if not user:
        failure_reason = 'UNKNOWN_EMAIL'
    elif not user.active:
        failure_reason = 'INACTIVE_USER'
    else:
        valid, upgraded_hash = verify_password(password, user.password_hash)
        if not valid:
            failure_reason = 'BAD_PASSWORD'
        elif upgraded_hash:
            user.password_hash = upgraded_hash

    if failure_reason:
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason=failure_reason,
            user_id=user.id if user else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        logger.warning('Login rejected', extra={'failure_reason': failure_reason, 'ip': ip})
        return JSONResponse({'error': 'Invalid email or password', 'kind': 'unauthorized'}, status_code=401)

    token = create_web_session(db, user.id, ip, user_agent)
    log_auth_event(db, attempted_email=email, success=True, user_id=user.id, ip=ip, user_agent=user_agent)
    log_audit(db, action='LOGIN', entity='User', entity_id=user.id, user_id=user.id, details=f'Login from {ip or "unknown"}')
    db.commit()

    response = JSONResponse(
        {'id': user.id, 'email': user.email, 'role': user.role.value, 'base_id': user.base_id}
    )
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)
        log_audit(db, action='LOGOUT', entity='User', entity_id=principal.id, user_id=principal.id)
        db.commit()
    response = JSONResponse({'message': 'Logged out'})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return _principal_payload(principal)
