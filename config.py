"""Módulo de configuración del API del ledger.

Proporciona lectura de variables de entorno (con soporte de archivo .env local)
para la base de datos, los tokens JWT, el hashing de contraseñas y la
exportación CSV.
"""

import os
from pathlib import Path
from functools import lru_cache
from dotenv import load_dotenv


# get_settings: Devuelve (cacheado) la instancia única de Settings.
@lru_cache
def get_settings():
    return Settings()


class Settings:
    """Agrupa todos los parámetros de configuración usados en la aplicación.

    Se inicializa leyendo variables de entorno. Incluye URL de base de datos,
    secreto y duración de los JWT, coste de bcrypt y delimitador del export.
    """
    def __init__(self):
        # Cargar .env local (aislado al directorio del módulo)
        base_dir = Path(__file__).resolve().parent
        load_dotenv(base_dir / '.env')

        default_db_path = base_dir / 'cobol_bridge.db'
        self.database_url = os.getenv('LEDGER_DB_URL', f"sqlite:///{default_db_path}")
        self.jwt_secret = os.getenv('JWT_SECRET', 'dev-secret-change')
        self.jwt_algorithm = os.getenv('JWT_ALG', 'HS256')
        # 2 horas por defecto
        self.jwt_exp_minutes = int(os.getenv('JWT_EXP_MIN', '120'))
        self.bcrypt_rounds = int(os.getenv('BCRYPT_ROUNDS', '12'))
        self.export_delimiter = os.getenv('EXPORT_DELIMITER', ';')
        self.log_level = os.getenv('LOG_LEVEL', 'INFO')
