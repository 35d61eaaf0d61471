import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from armory.config import settings
from armory.db import SessionLocal
from armory.errors import LedgerError
from armory.routers import auth, inventory, transactions, users
from armory.security.headers import install_security_headers
from armory.security.sessions import install_auth_session_middleware

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    'validation_error': status.HTTP_400_BAD_REQUEST,
    'permission_denied': status.HTTP_403_FORBIDDEN,
    'not_found': status.HTTP_404_NOT_FOUND,
    'insufficient_inventory': status.HTTP_409_CONFLICT,
    'conflict': status.HTTP_409_CONFLICT,
}

app = FastAPI(title='Military Asset Ledger')
app.state.session_factory = SessionLocal


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    logger.warning(
        'Request rejected',
        extra={'path': request.url.path, 'kind': exc.kind, 'reason': exc.message},
    )
    return JSONResponse({'error': exc.message, 'kind': exc.kind}, status_code=status_code)


install_security_headers(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(inventory.router)
app.include_router(transactions.router)
app.include_router(users.router)


@app.get('/')
def root() -> dict:
    return {'service': 'Military Asset Ledger'}


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
