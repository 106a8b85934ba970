"""Exportación CSV de transacciones.

Formato pensado para hojas de cálculo en configuración regional francesa:
delimitador ';', montos con dos decimales y fechas "05 Mars 2024, 14h30".
Es formateo puro: sin I/O ni mutaciones.
"""

import csv
import io
from datetime import datetime
from typing import Iterable, Union

from query import parse_timestamp

CSV_HEADER = ('Transaction ID', 'Client', 'Montant (€)', 'Date')

FRENCH_MONTHS = (
    'Janvier', 'Février', 'Mars', 'Avril', 'Mai', 'Juin',
    'Juillet', 'Août', 'Septembre', 'Octobre', 'Novembre', 'Décembre',
)


# format_amount: Monto con exactamente dos decimales.
def format_amount(amount: float) -> str:
    return f"{amount:.2f}"


# format_date: Fecha como "DD Mes YYYY, HHhMM" (reloj de 24h).
def format_date(value: Union[datetime, str]) -> str:
    moment = parse_timestamp(value)
    return (f"{moment.day:02d} {FRENCH_MONTHS[moment.month - 1]} {moment.year}, "
            f"{moment.hour:02d}h{moment.minute:02d}")


def format_csv(rows: Iterable, delimiter: str = ';') -> str:
    """Genera el CSV con cabecera fija, respetando el orden de las filas recibidas.

    Cada fila debe exponer transaction_id, client_name, amount y created_at
    (p.ej. models.TransactionView). Un cliente ausente deja la celda vacía.
    """
    output = io.StringIO()
    writer = csv.writer(output, delimiter=delimiter, lineterminator='\n')
    writer.writerow(CSV_HEADER)
    for row in rows:
        writer.writerow([
            row.transaction_id,
            row.client_name or '',
            format_amount(row.amount),
            format_date(row.created_at),
        ])
    return output.getvalue()
