"""Motor de consultas sobre transacciones.

Convierte criterios opcionales (cliente, rango de montos, rango de fechas) en
un predicado compuesto por un conjunto cerrado de condiciones tipadas:
igualdad (Equals), rango inclusivo (Range) y conjunción (AllOf). Cada
predicado se evalúa en memoria con matches() o se traduce a SQL con clause().
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, List, Optional, Tuple, Union

from sqlalchemy import and_, true

from errors import InvalidFilterError
from models import Transaction, TransactionView

FILTERABLE_FIELDS = ('client_id', 'amount', 'created_at')

# "2024-03-05T14h30" -> "2024-03-05T14:30"
_HOUR_MINUTE = re.compile(r'(\d{2})h(\d{2})')
_DATE_ONLY = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def _column(name: str):
    if name not in FILTERABLE_FIELDS:
        raise InvalidFilterError(f"Unknown filter field: {name}")
    return getattr(Transaction, name)


@dataclass(frozen=True)
class Equals:
    name: str
    value: Any

    def matches(self, txn) -> bool:
        return getattr(txn, self.name) == self.value

    def clause(self):
        return _column(self.name) == self.value


@dataclass(frozen=True)
class Range:
    """lower <= valor <= upper; un extremo None no restringe."""
    name: str
    lower: Any = None
    upper: Any = None

    def matches(self, txn) -> bool:
        value = getattr(txn, self.name)
        if self.lower is not None and value < self.lower:
            return False
        if self.upper is not None and value > self.upper:
            return False
        return True

    def clause(self):
        column = _column(self.name)
        parts = []
        if self.lower is not None:
            parts.append(column >= self.lower)
        if self.upper is not None:
            parts.append(column <= self.upper)
        return and_(true(), *parts)


@dataclass(frozen=True)
class AllOf:
    """Conjunción; sin predicados acepta todo."""
    predicates: Tuple = field(default_factory=tuple)

    def matches(self, txn) -> bool:
        return all(p.matches(txn) for p in self.predicates)

    def clause(self):
        return and_(true(), *(p.clause() for p in self.predicates))


# parse_timestamp: Convierte una fecha ISO-8601 (o la forma HHhMM) en un
# datetime naive en UTC, comparable con created_at.
def parse_timestamp(value: Union[str, datetime, date]) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        text = _HOUR_MINUTE.sub(r'\1:\2', value.strip())
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidFilterError(f"Invalid date: {value}") from exc
    else:
        raise InvalidFilterError(f"Invalid date: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _end_of_range(value) -> datetime:
    # Una fecha sin hora como límite superior cubre el día completo.
    if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
        return parse_timestamp(value) + timedelta(days=1) - timedelta(microseconds=1)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max)
    return parse_timestamp(value)


def _number(value, label: str) -> float:
    if isinstance(value, bool):
        raise InvalidFilterError(f"Invalid {label}: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidFilterError(f"Invalid {label}: {value!r}") from exc


@dataclass
class TransactionCriteria:
    """Criterios opcionales de filtrado; los ausentes no restringen."""
    client_id: Optional[int] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    start_date: Optional[Union[str, datetime, date]] = None
    end_date: Optional[Union[str, datetime, date]] = None


# build_predicate: Combina con AND los criterios presentes.
def build_predicate(criteria: Optional[TransactionCriteria] = None) -> AllOf:
    criteria = criteria or TransactionCriteria()
    predicates = []
    if criteria.client_id is not None:
        try:
            client_id = int(criteria.client_id)
        except (TypeError, ValueError) as exc:
            raise InvalidFilterError(f"Invalid clientId: {criteria.client_id!r}") from exc
        predicates.append(Equals('client_id', client_id))
    if criteria.min_amount is not None or criteria.max_amount is not None:
        lower = None if criteria.min_amount is None else _number(criteria.min_amount, 'minAmount')
        upper = None if criteria.max_amount is None else _number(criteria.max_amount, 'maxAmount')
        predicates.append(Range('amount', lower, upper))
    if criteria.start_date is not None or criteria.end_date is not None:
        lower = None if criteria.start_date is None else parse_timestamp(criteria.start_date)
        upper = None if criteria.end_date is None else _end_of_range(criteria.end_date)
        predicates.append(Range('created_at', lower, upper))
    return AllOf(tuple(predicates))


class QueryEngine:
    """Evalúa criterios contra el almacenamiento del ledger (solo lectura)."""

    def __init__(self, storage):
        self.storage = storage

    def query_transactions(self, criteria: Optional[TransactionCriteria] = None) -> List[Transaction]:
        return self.storage.find_transactions(build_predicate(criteria))

    def query_transactions_with_client_names(self, criteria: Optional[TransactionCriteria] = None) -> List[TransactionView]:
        rows = self.storage.find_transactions_with_client_names(build_predicate(criteria))
        return [
            TransactionView(
                transaction_id=txn.id,
                client_id=txn.client_id,
                client_name=name,
                amount=txn.amount,
                created_at=txn.created_at,
            )
            for txn, name in rows
        ]
