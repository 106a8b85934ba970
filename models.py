"""Modelos de datos persistentes.

Incluye usuarios autenticables, clientes con su balance y el registro
(solo-append) de transacciones, más la vista unida usada por el export.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """Representa un usuario autenticable con rol.

    Campos:
      username: Nombre único (comparación exacta, sensible a mayúsculas).
      password_hash: Hash bcrypt de la contraseña; nunca el texto plano.
      role: 'user' por defecto, cualquier cadena permitida.
    """
    __tablename__ = 'users'

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    role: str = Field(default='user')


class Client(SQLModel, table=True):
    """Entidad financiera cuyo balance solo cambia al aplicar transacciones."""
    __tablename__ = 'clients'

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    balance: float = Field(default=0.0)


class Transaction(SQLModel, table=True):
    """Movimiento inmutable sobre un cliente.

    amount puede ser negativo (débito). created_at no tiene valor por defecto:
    lo asigna siempre el ledger al registrar.
    """
    __tablename__ = 'transactions'

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: int = Field(foreign_key='clients.id', index=True)
    amount: float
    # Columna DateTime sin zona: se guarda UTC naive, igual que en memoria.
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False, index=True))


class TransactionView(SQLModel):
    """Transacción unida al nombre de su cliente (None si ya no existe)."""
    transaction_id: int
    client_id: int
    client_name: Optional[str] = None
    amount: float
    created_at: datetime
