"""Script para crear clientes en la base configurada.

Los clientes se crean fuera del API; este script es la vía para poblarlos.

Uso: python seed.py "Acme" "Globex"
"""

import argparse

from config import get_settings
from database import make_engine
from ledger import LedgerService
from logging_config import setup_logging
from storage import SQLStorage


# seed_clients: Crea un cliente (balance 0) por cada nombre recibido.
def seed_clients(storage, names):
    ledger = LedgerService(storage)
    return [ledger.add_client(name) for name in names]


def main(argv=None):
    parser = argparse.ArgumentParser(description="Crea clientes en el ledger")
    parser.add_argument('names', nargs='+', help="Nombres de los clientes")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level)
    storage = SQLStorage(make_engine(settings.database_url))
    try:
        for client in seed_clients(storage, args.names):
            print(f"{client.id}\t{client.name}")
    finally:
        storage.close()


if __name__ == "__main__":
    main()
