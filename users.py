"""Credential Store: registro y verificación de usuarios."""

from typing import Optional

from errors import InvalidCredentialsError, ValidationError
from logging_config import get_logger, log_action
from models import User
from security import dummy_verify, hash_password, verify_password

logger = get_logger('users')


class CredentialStore:
    """Gestiona identidades sobre el puerto de almacenamiento.

    La contraseña solo se persiste como hash bcrypt. Los fallos de login son
    idénticos para usuario desconocido y contraseña errónea.
    """

    def __init__(self, storage):
        self.storage = storage

    def register(self, username: Optional[str], secret: Optional[str], role: Optional[str] = None) -> User:
        """Crea un usuario nuevo o lanza DuplicateUsernameError."""
        if not username or not secret:
            raise ValidationError("Username and password are required")
        user = User(username=username, password_hash=hash_password(secret), role=role or 'user')
        # La unicidad la garantiza el almacenamiento, no una consulta previa.
        created = self.storage.add_user(user)
        log_action(logger, 'info', "User registered", user_id=str(created.id),
                   action='register', resource='users')
        return created

    def verify(self, username: Optional[str], secret: Optional[str]) -> User:
        """Devuelve el usuario si las credenciales son válidas."""
        if not username or not secret:
            raise ValidationError("Username and password are required")
        user = self.storage.get_user(username)
        if user is None:
            dummy_verify()
            valid = False
        else:
            valid = verify_password(secret, user.password_hash)
        if not valid:
            log_action(logger, 'warning', "Login failed", action='login', resource='users')
            raise InvalidCredentialsError("Invalid credentials")
        log_action(logger, 'info', "Login succeeded", user_id=str(user.id),
                   action='login', resource='users')
        return user
