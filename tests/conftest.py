"""
Pytest configuration and fixtures for the ledger API tests.
"""

import os
from datetime import datetime, timedelta

# Debe fijarse antes de importar security (rondas de bcrypt al importar).
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('JWT_SECRET', 'test-secret')
os.environ.setdefault('LEDGER_DB_URL', 'sqlite://')

import pytest

from database import make_engine
from storage import InMemoryStorage, SQLStorage


class FakeClock:
    """Reloj controlable: devuelve `now` y avanza `step` en cada llamada."""

    def __init__(self, start=None, step=timedelta(minutes=1)):
        self.now = start or datetime(2024, 3, 5, 14, 30)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def memory_storage():
    return InMemoryStorage()


@pytest.fixture
def sql_storage():
    store = SQLStorage(make_engine('sqlite://'))
    yield store
    store.close()


@pytest.fixture(params=['memory', 'sqlite'])
def storage(request):
    """Ejecuta la prueba contra ambas implementaciones del almacenamiento."""
    if request.param == 'memory':
        store = InMemoryStorage()
    else:
        store = SQLStorage(make_engine('sqlite://'))
    yield store
    store.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=['memory', 'sqlite', 'sqlite-file'])
def shared_storage(request, tmp_path):
    """Almacenamiento para pruebas multihilo, incluida una base SQLite en disco."""
    if request.param == 'memory':
        store = InMemoryStorage()
    elif request.param == 'sqlite':
        store = SQLStorage(make_engine('sqlite://'))
    else:
        store = SQLStorage(make_engine(f"sqlite:///{tmp_path / 'ledger.db'}"))
    yield store
    store.close()
