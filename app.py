"""Aplicación FastAPI principal con endpoints de autenticación, clientes y transacciones.

Las rutas solo traducen HTTP hacia los servicios del núcleo (credenciales,
tokens, ledger, consultas y export) y los errores de dominio hacia códigos HTTP.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from config import get_settings
from database import make_engine
from errors import AuthenticationError, AuthorizationError, LedgerError, StorageFault
from export import format_csv
from ledger import LedgerService
from logging_config import get_logger, setup_logging
from query import QueryEngine, TransactionCriteria
from security import TokenClaims, TokenService
from storage import SQLStorage
from users import CredentialStore

settings = get_settings()
logger = get_logger('api')
app = FastAPI(title="COBOL Bridge API", version="1.0.0",
              description="API pour exposer des données COBOL", docs_url="/api-docs")
security = HTTPBearer(auto_error=False)


# ---------------------------- Services ---------------------------
class LedgerSystem:
    """Componentes del núcleo inicializados sobre un mismo almacenamiento."""

    def __init__(self, storage, tokens: Optional[TokenService] = None):
        self.storage = storage
        self.credentials = CredentialStore(storage)
        self.tokens = tokens or TokenService.from_settings(settings)
        self.ledger = LedgerService(storage)
        self.queries = QueryEngine(storage)


# get_system: Instancia única (los locks por cliente del ledger deben compartirse).
@lru_cache
def get_system() -> LedgerSystem:
    return LedgerSystem(SQLStorage(make_engine(settings.database_url)))


# ---------------------------- Schemas ----------------------------
class RegisterPayload(BaseModel):
    """Payload para registro de usuarios nuevos."""
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginPayload(BaseModel):
    """Payload para inicio de sesión y obtención de JWT."""
    username: Optional[str] = None
    password: Optional[str] = None


class TransactionPayload(BaseModel):
    """Payload para registrar una transacción sobre un cliente."""
    clientId: int
    amount: float


# ------------------------- Error Handlers ------------------------
@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError):
    """Traduce errores de dominio a su código HTTP."""
    if isinstance(exc, StorageFault):
        logger.error("Storage fault on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    """Entrada ausente o mal formada: 400 en lugar del 422 por defecto."""
    fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "fields": fields})


@app.exception_handler(Exception)
def unexpected_error_handler(request: Request, exc: Exception):
    """Falla inesperada: se registra y se devuelve un 500 genérico."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ----------------------- Auth Dependencies -----------------------
def get_current_claims(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
                       system: LedgerSystem = Depends(get_system)) -> TokenClaims:
    """Obtiene los claims del token Bearer o lanza 401.

    No se vuelve a consultar el usuario: la verificación es puramente criptográfica.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing token")
    return system.tokens.verify(credentials.credentials)


def require_role(role: str):
    """Genera dependencia que valida que el token tenga el rol requerido."""
    def checker(claims: TokenClaims = Depends(get_current_claims)):
        if claims.role != role:
            raise AuthorizationError("Forbidden: insufficient role")
        return claims
    return checker


# ------------------------- Startup Event -------------------------
@app.on_event("startup")
def on_startup():
    """Configura el logging estructurado."""
    setup_logging(settings.log_level)


# --------------------------- Serializers -------------------------
def _client_to_dict(client):
    return {"id": client.id, "name": client.name, "balance": client.balance}


def _transaction_to_dict(txn):
    return {"id": txn.id, "clientId": txn.client_id, "amount": txn.amount,
            "createdAt": txn.created_at.isoformat()}


def _criteria(clientId, minAmount, maxAmount, startDate, endDate) -> TransactionCriteria:
    return TransactionCriteria(client_id=clientId, min_amount=minAmount, max_amount=maxAmount,
                               start_date=startDate or None, end_date=endDate or None)


# --------------------------- Auth Routes -------------------------
@app.post('/auth/register', status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, system: LedgerSystem = Depends(get_system)):
    """Registra un nuevo usuario y devuelve su token."""
    user = system.credentials.register(payload.username, payload.password, payload.role)
    return {"message": "User created successfully", "token": system.tokens.issue(user)}


@app.post('/auth/login')
def login(payload: LoginPayload, system: LedgerSystem = Depends(get_system)):
    """Autentica usuario y devuelve token JWT para futuras peticiones."""
    user = system.credentials.verify(payload.username, payload.password)
    return {"message": "Login successful", "token": system.tokens.issue(user)}


# ------------------------- Ledger Endpoints ----------------------
@app.get('/clients')
def list_clients(claims: TokenClaims = Depends(get_current_claims),
                 system: LedgerSystem = Depends(get_system)):
    """Lista todos los clientes con su balance."""
    return [_client_to_dict(c) for c in system.ledger.list_clients()]


@app.post('/transactions')
def add_transaction(payload: TransactionPayload, claims: TokenClaims = Depends(get_current_claims),
                    system: LedgerSystem = Depends(get_system)):
    """Registra una transacción y actualiza el balance del cliente."""
    system.ledger.record_transaction(payload.clientId, payload.amount)
    return {"message": "Transaction saved"}


@app.get('/transactions')
def list_transactions(clientId: Optional[int] = None, minAmount: Optional[float] = None,
                      maxAmount: Optional[float] = None, startDate: Optional[str] = None,
                      endDate: Optional[str] = None,
                      claims: TokenClaims = Depends(get_current_claims),
                      system: LedgerSystem = Depends(get_system)):
    """Lista transacciones filtradas por cliente, rango de montos y de fechas."""
    criteria = _criteria(clientId, minAmount, maxAmount, startDate, endDate)
    return [_transaction_to_dict(t) for t in system.queries.query_transactions(criteria)]


@app.get('/transactions/export')
def export_transactions(clientId: Optional[int] = None, minAmount: Optional[float] = None,
                        maxAmount: Optional[float] = None, startDate: Optional[str] = None,
                        endDate: Optional[str] = None,
                        claims: TokenClaims = Depends(get_current_claims),
                        system: LedgerSystem = Depends(get_system)):
    """Exporta las transacciones filtradas como CSV adjunto."""
    criteria = _criteria(clientId, minAmount, maxAmount, startDate, endDate)
    rows = system.queries.query_transactions_with_client_names(criteria)
    content = format_csv(rows, delimiter=settings.export_delimiter)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@app.get('/admin/reconcile')
def reconcile(claims: TokenClaims = Depends(require_role('admin')),
              system: LedgerSystem = Depends(get_system)):
    """Audita que cada balance coincida con la suma de sus transacciones."""
    mismatches = system.ledger.reconcile()
    return {"consistent": not mismatches, "mismatches": mismatches}


# -------------------------- Utility ------------------------------
@app.get('/health')
def health():
    """Verificación básica de salud."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
