"""Jerarquía de errores de dominio.

Cada error conoce el código HTTP con el que se traduce en la frontera del API,
de modo que el núcleo nunca depende de FastAPI.
"""


class LedgerError(Exception):
    """Error base de dominio con mensaje apto para el cliente."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Entrada ausente o mal formada."""
    status_code = 400


class InvalidFilterError(ValidationError):
    """Criterio de consulta imposible de interpretar (p.ej. fecha inválida)."""


class AuthenticationError(LedgerError):
    """Credenciales incorrectas o token ausente/inválido/expirado."""
    status_code = 401


class InvalidCredentialsError(AuthenticationError):
    pass


class TokenInvalidError(AuthenticationError):
    pass


class TokenExpiredError(AuthenticationError):
    pass


class AuthorizationError(LedgerError):
    """Usuario autenticado sin el rol requerido."""
    status_code = 403


class NotFoundError(LedgerError):
    status_code = 404


class ClientNotFoundError(NotFoundError):
    pass


class ConflictError(LedgerError):
    # El contrato de registro responde 400 ante duplicados.
    status_code = 400


class DuplicateUsernameError(ConflictError):
    pass


class StorageFault(LedgerError):
    """Fallo de la capa de persistencia (StorageUnavailable)."""
    status_code = 500
