"""Puerto de almacenamiento del ledger.

Define la interfaz abstracta que usan el Credential Store, el ledger y el motor
de consultas, con dos implementaciones: SQLStorage (SQLModel, persistente) e
InMemoryStorage (diccionarios, para pruebas). El núcleo nunca instancia una
implementación concreta: la recibe inyectada.

Los predicados de consulta se reciben ya construidos y solo se usan a través
de matches(transaction) y clause().
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import col, select

from database import DBSession, init_db
from errors import ClientNotFoundError, DuplicateUsernameError, StorageFault
from models import Client, Transaction, User


class StorageInterface(ABC):
    """Interfaz abstracta sobre las colecciones users, clients y transactions."""

    @abstractmethod
    def get_user(self, username: str) -> Optional[User]:
        """Busca un usuario por nombre exacto."""

    @abstractmethod
    def add_user(self, user: User) -> User:
        """Persiste un usuario nuevo; DuplicateUsernameError si ya existe."""

    @abstractmethod
    def list_clients(self) -> List[Client]:
        pass

    @abstractmethod
    def get_client(self, client_id: int) -> Optional[Client]:
        pass

    @abstractmethod
    def add_client(self, client: Client) -> Client:
        pass

    @abstractmethod
    def delete_client(self, client_id: int) -> bool:
        pass

    @abstractmethod
    def save_transaction(self, transaction: Transaction) -> Transaction:
        """Inserta la transacción y suma su monto al balance del cliente como una sola unidad.

        ClientNotFoundError si el cliente no existe; si algo falla no queda
        aplicado ninguno de los dos cambios.
        """

    @abstractmethod
    def find_transactions(self, predicate) -> List[Transaction]:
        """Transacciones que cumplen el predicado, en orden de inserción."""

    @abstractmethod
    def find_transactions_with_client_names(self, predicate) -> List[Tuple[Transaction, Optional[str]]]:
        """Igual que find_transactions, unido (left outer) al nombre del cliente."""

    def close(self) -> None:
        pass


class SQLStorage(StorageInterface):
    """Implementación sobre SQLModel. Crea las tablas al inicializarse.

    Con StaticPool (SQLite en memoria) todos los hilos comparten una conexión,
    así que las sesiones se serializan.
    """

    def __init__(self, engine):
        self.engine = engine
        self._serial = threading.RLock() if isinstance(engine.pool, StaticPool) else None
        init_db(engine)

    @contextmanager
    def _session(self):
        try:
            with self._serial or nullcontext():
                with DBSession(self.engine) as s:
                    yield s
        except SQLAlchemyError as exc:
            raise StorageFault("Storage unavailable") from exc

    def get_user(self, username: str) -> Optional[User]:
        with self._session() as s:
            return s.exec(select(User).where(User.username == username)).first()

    def add_user(self, user: User) -> User:
        with self._session() as s:
            s.add(user)
            try:
                s.commit()
            except IntegrityError as exc:
                s.rollback()
                raise DuplicateUsernameError("Username already exists") from exc
            s.refresh(user)
            return user

    def list_clients(self) -> List[Client]:
        with self._session() as s:
            return list(s.exec(select(Client).order_by(Client.id)).all())

    def get_client(self, client_id: int) -> Optional[Client]:
        with self._session() as s:
            return s.get(Client, client_id)

    def add_client(self, client: Client) -> Client:
        with self._session() as s:
            s.add(client)
            s.commit()
            s.refresh(client)
            return client

    def delete_client(self, client_id: int) -> bool:
        with self._session() as s:
            client = s.get(Client, client_id)
            if client is None:
                return False
            s.delete(client)
            s.commit()
            return True

    def save_transaction(self, transaction: Transaction) -> Transaction:
        statement = (
            update(Client)
            .where(col(Client.id) == transaction.client_id)
            .values(balance=col(Client.balance) + transaction.amount)
        )
        with self._session() as s:
            # UPDATE relativo: el balance se lee y escribe dentro de la misma sentencia.
            result = s.connection().execute(statement)
            if result.rowcount == 0:
                raise ClientNotFoundError("Client not found")
            s.add(transaction)
            # Un único commit: update e insert quedan en la misma transacción.
            s.commit()
            s.refresh(transaction)
            return transaction

    def find_transactions(self, predicate) -> List[Transaction]:
        statement = select(Transaction).where(predicate.clause()).order_by(Transaction.id)
        with self._session() as s:
            return list(s.exec(statement).all())

    def find_transactions_with_client_names(self, predicate) -> List[Tuple[Transaction, Optional[str]]]:
        statement = (
            select(Transaction, Client.name)
            .join(Client, Transaction.client_id == Client.id, isouter=True)
            .where(predicate.clause())
            .order_by(Transaction.id)
        )
        with self._session() as s:
            return [(txn, name) for txn, name in s.exec(statement).all()]

    def close(self) -> None:
        self.engine.dispose()


class InMemoryStorage(StorageInterface):
    """Implementación en memoria para pruebas.

    Guarda diccionarios por tabla y devuelve copias para evitar mutaciones
    externas. Un RLock hace atómica cada operación.
    """

    def __init__(self):
        self._users: Dict[int, dict] = {}
        self._clients: Dict[int, dict] = {}
        self._transactions: Dict[int, dict] = {}
        self._sequences = {'users': 0, 'clients': 0, 'transactions': 0}
        self._lock = threading.RLock()

    def _next_id(self, table: str) -> int:
        self._sequences[table] += 1
        return self._sequences[table]

    def get_user(self, username: str) -> Optional[User]:
        with self._lock:
            for data in self._users.values():
                if data['username'] == username:
                    return User(**data)
            return None

    def add_user(self, user: User) -> User:
        with self._lock:
            if any(d['username'] == user.username for d in self._users.values()):
                raise DuplicateUsernameError("Username already exists")
            data = user.model_dump()
            data['id'] = self._next_id('users')
            self._users[data['id']] = data
            return User(**data)

    def list_clients(self) -> List[Client]:
        with self._lock:
            return [Client(**data) for _, data in sorted(self._clients.items())]

    def get_client(self, client_id: int) -> Optional[Client]:
        with self._lock:
            data = self._clients.get(client_id)
            return Client(**data) if data else None

    def add_client(self, client: Client) -> Client:
        with self._lock:
            data = client.model_dump()
            data['id'] = self._next_id('clients')
            self._clients[data['id']] = data
            return Client(**data)

    def delete_client(self, client_id: int) -> bool:
        with self._lock:
            return self._clients.pop(client_id, None) is not None

    def save_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            client = self._clients.get(transaction.client_id)
            if client is None:
                raise ClientNotFoundError("Client not found")
            data = transaction.model_dump()
            data['id'] = self._next_id('transactions')
            self._transactions[data['id']] = data
            client['balance'] = (client['balance'] or 0.0) + transaction.amount
            return Transaction(**data)

    def _matching(self, predicate) -> List[Transaction]:
        rows = [Transaction(**data) for _, data in sorted(self._transactions.items())]
        return [txn for txn in rows if predicate.matches(txn)]

    def find_transactions(self, predicate) -> List[Transaction]:
        with self._lock:
            return self._matching(predicate)

    def find_transactions_with_client_names(self, predicate) -> List[Tuple[Transaction, Optional[str]]]:
        with self._lock:
            result = []
            for txn in self._matching(predicate):
                client = self._clients.get(txn.client_id)
                result.append((txn, client['name'] if client else None))
            return result
