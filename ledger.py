"""Servicio del ledger: clientes, registro de transacciones y reconciliación.

Cada transacción crea su registro y actualiza el balance del cliente como una
sola unidad. Las escrituras sobre un mismo cliente se serializan con un lock
fijo por franja de ids; clientes de franjas distintas avanzan en paralelo.
"""

import math
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, List, Optional

from errors import ClientNotFoundError, ValidationError
from logging_config import get_logger, log_action
from models import Client, Transaction
from query import AllOf, parse_timestamp

logger = get_logger('ledger')

# Número fijo de locks: la memoria no crece con los ids recibidos.
LOCK_STRIPES = 64


# utcnow: Timestamp naive en UTC, el formato que guarda created_at
# (los relojes con zona se normalizan al registrar).
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _validate_amount(amount) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError("Amount must be a number")
    if not math.isfinite(amount):
        raise ValidationError("Amount must be a finite number")
    return float(amount)


class LedgerService:
    """Agrupa lectura de clientes, registro de transacciones y auditoría de balances."""

    def __init__(self, storage, clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.clock = clock or utcnow
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, client_id: int) -> threading.Lock:
        return self._locks[hash(client_id) % LOCK_STRIPES]

    def list_clients(self) -> List[Client]:
        return self.storage.list_clients()

    def get_client(self, client_id: int) -> Optional[Client]:
        return self.storage.get_client(client_id)

    def add_client(self, name: str) -> Client:
        """Crea un cliente con balance 0."""
        if not name or not name.strip():
            raise ValidationError("Client name is required")
        client = self.storage.add_client(Client(name=name.strip(), balance=0.0))
        log_action(logger, 'info', "Client created", action='create', resource='clients',
                   extra={'client_id': client.id})
        return client

    def record_transaction(self, client_id: int, amount) -> Transaction:
        """Registra una transacción y aplica su monto al balance del cliente.

        Lanza ClientNotFoundError si el cliente no existe; en ese caso, o si
        falla el almacenamiento, el ledger queda sin cambios.
        """
        amount = _validate_amount(amount)
        with self._lock_for(client_id):
            client = self.storage.get_client(client_id)
            if client is None:
                raise ClientNotFoundError("Client not found")
            transaction = Transaction(client_id=client_id, amount=amount,
                                      created_at=parse_timestamp(self.clock()))
            saved = self.storage.save_transaction(transaction)
        log_action(logger, 'info', "Transaction saved", action='record', resource='transactions',
                   extra={'transaction_id': saved.id, 'client_id': client_id, 'amount': amount})
        return saved

    def reconcile(self) -> List[dict]:
        """Lista los clientes cuyo balance no coincide con la suma de sus transacciones."""
        totals = defaultdict(float)
        # Sumar en orden de inserción reproduce la misma aritmética que el registro.
        for txn in self.storage.find_transactions(AllOf()):
            totals[txn.client_id] += txn.amount
        mismatches = []
        for client in self.storage.list_clients():
            expected = totals.get(client.id, 0.0)
            balance = client.balance or 0.0
            if not math.isclose(balance, expected, rel_tol=1e-9, abs_tol=1e-9):
                mismatches.append({
                    'client_id': client.id,
                    'balance': balance,
                    'expected': expected,
                    'difference': balance - expected,
                })
        if mismatches:
            log_action(logger, 'warning', "Balance mismatches found", action='reconcile',
                       resource='clients', extra={'count': len(mismatches)})
        return mismatches

