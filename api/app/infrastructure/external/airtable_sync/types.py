"""
Tipos y utilidades puras para el pipeline Airtable -> Postgres.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from app.shared.constants.sync_constants import TableKind


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    Airtable suele devolver ISO8601 con zona; SQLite devuelve datetimes naive.
    Normalizamos para comparar/almacenar de forma consistente.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(raw: Any) -> Optional[datetime]:
    """Parsea "2025-12-16T10:15:00.000Z" a datetime UTC. None si no es parseable."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    try:
        return ensure_utc(datetime.fromisoformat(str(raw).replace("Z", "+00:00")))
    except ValueError:
        return None


@dataclass(frozen=True)
class AirtableRecord:
    """
    Snapshot inmutable de un registro Airtable.

    Nunca se modifica localmente: el mapper produce un draft nuevo a partir de él.
    """

    record_id: str
    table_kind: TableKind
    fields: dict[str, Any]
    last_modified: datetime


@dataclass(frozen=True)
class RecordPage:
    """Una página de listRecords con su token de continuación."""

    records: list[AirtableRecord]
    next_page_token: Optional[str] = None


Transform = Callable[[Any], Any]


@dataclass(frozen=True)
class FieldMapping:
    """
    Define el mapeo de un campo Airtable a una columna Postgres.

    - candidates: nombres del field en Airtable, en orden de prioridad
      (el campo puede haber sido renombrado con el tiempo). Se toma el
      primer candidato presente y no vacío.
    - pg_column: nombre de la columna en Postgres
    - transform: función opcional para transformar el valor antes de persistir
    - required: si True, el valor debe existir (si falta se levanta MappingError)
    """

    candidates: Sequence[str]
    pg_column: str
    transform: Optional[Transform] = None
    required: bool = False

    @property
    def primary_field(self) -> str:
        return self.candidates[0]

    def matches(self, name: str) -> bool:
        """True si `name` es la columna destino o alguno de los alias Airtable."""
        return name == self.pg_column or name in self.candidates


@dataclass
class EntityDraft:
    """
    Resultado del mapper: external_id + columnas de negocio.

    No lleva id interno (lo asigna el store) ni budget_index (derivado).
    """

    external_id: str
    last_modified: datetime
    values: dict[str, Any] = field(default_factory=dict)
