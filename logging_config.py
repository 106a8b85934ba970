"""Configuración de logging estructurado.

Cada registro se emite como una línea JSON con timestamp, nivel, módulo y
mensaje, más los campos opcionales action/resource/user_id/extra.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

ROOT_LOGGER = 'cobol_bridge'


class JSONFormatter(logging.Formatter):
    """Formatea registros de logging como JSON de una línea."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
            "user_id": getattr(record, 'user_id', None),
            "action": getattr(record, 'action', None),
            "resource": getattr(record, 'resource', None),
            "extra": getattr(record, 'extra_data', None),
        }
        log_entry = {k: v for k, v in log_entry.items() if v is not None}
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


# setup_logging: Configura el logger raíz del proyecto con salida JSON a consola.
def setup_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER)
    # Evitar handlers duplicados si se llama más de una vez.
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    return logger


# get_logger: Devuelve un logger hijo del logger raíz del proyecto.
def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


# log_action: Registra una acción con datos estructurados.
def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    fields = {'user_id': user_id, 'action': action, 'resource': resource, 'extra_data': extra}
    log_method = getattr(logger, level.lower(), logger.info)
    log_method(message, extra={k: v for k, v in fields.items() if v is not None})
