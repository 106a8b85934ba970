"""Funciones de seguridad: hashing de contraseñas y manejo de JWT.

Se utiliza bcrypt vía passlib para almacenar contraseñas y PyJWT para tokens.
La verificación de tokens es pura: no consulta el almacenamiento.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from passlib.context import CryptContext

from config import get_settings
from errors import TokenExpiredError, TokenInvalidError

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto",
                           bcrypt__rounds=settings.bcrypt_rounds)

# bcrypt solo considera los primeros 72 bytes.
BCRYPT_MAX_BYTES = 72


def _truncate(password: str) -> str:
    return password.encode('utf-8')[:BCRYPT_MAX_BYTES].decode('utf-8', errors='ignore')


# hash_password: Genera hash bcrypt de una contraseña en texto plano.
def hash_password(password: str) -> str:
    return pwd_context.hash(_truncate(password))


# verify_password: Verifica si la contraseña suministrada coincide con el hash.
def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(_truncate(password), password_hash)


# dummy_verify: Consume el mismo tiempo que una verificación real.
def dummy_verify() -> None:
    pwd_context.dummy_verify()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenClaims:
    """Payload verificado de un token: identidad, rol y vigencia."""
    subject: int
    role: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Emite y verifica tokens JWT firmados con duración fija."""

    def __init__(self, secret: str, algorithm: str = 'HS256', ttl: Optional[timedelta] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl or timedelta(hours=2)
        self.clock = clock or _utcnow

    @classmethod
    def from_settings(cls, cfg=None):
        cfg = cfg or settings
        return cls(cfg.jwt_secret, cfg.jwt_algorithm, timedelta(minutes=cfg.jwt_exp_minutes))

    # issue: Crea un JWT con sujeto (id del usuario) y rol.
    def issue(self, user) -> str:
        issued_at = self.clock()
        payload = {
            "sub": str(user.id),
            "role": user.role,
            "iat": issued_at,
            "exp": issued_at + self.ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    # verify: Decodifica el JWT; lanza TokenExpiredError o TokenInvalidError.
    def verify(self, token: str) -> TokenClaims:
        try:
            data = jwt.decode(token, self.secret, algorithms=[self.algorithm],
                              options={"require": ["sub", "exp", "iat"]})
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token expired") from exc
        except jwt.PyJWTError as exc:
            raise TokenInvalidError("Invalid token") from exc
        try:
            subject = int(data["sub"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalidError("Invalid token") from exc
        return TokenClaims(
            subject=subject,
            role=str(data.get("role", "user")),
            issued_at=datetime.fromtimestamp(data["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(data["exp"], tz=timezone.utc),
        )
