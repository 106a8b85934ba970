"""Módulo de acceso a la base de datos.

Define la creación del motor y utilidades de sesión para realizar operaciones
CRUD sobre las tablas del ledger.
"""

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session


# make_engine: Crea el motor SQLAlchemy. SQLite se comparte entre los hilos
# del servidor; la variante en memoria usa una única conexión.
def make_engine(database_url: str, echo: bool = False):
    kwargs = {}
    if database_url.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if database_url in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool
    return create_engine(database_url, echo=echo, **kwargs)


# init_db: Crea todas las tablas definidas en los modelos si no existen.
def init_db(engine):
    SQLModel.metadata.create_all(engine)


class DBSession:
    """Context manager para manejar sesiones.

    Al salir del contexto realiza rollback si hubo excepción y cierra la sesión.
    Los objetos devueltos siguen siendo legibles tras el commit.
    """
    def __init__(self, engine):
        self.engine = engine

    def __enter__(self):
        self.session = Session(self.engine, expire_on_commit=False)
        return self.session

    def __exit__(self, exc_type, exc, tb):
        if exc:
            self.session.rollback()
        self.session.close()
