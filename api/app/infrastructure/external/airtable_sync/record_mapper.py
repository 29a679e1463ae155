"""
Mapeo puro AirtableRecord -> EntityDraft.

Reglas:
- Por cada columna se prueba la lista de alias en orden; gana el primer
  valor presente y no vacío.
- Campos requeridos ausentes o con forma inválida -> MappingError.
- Nunca toca budget_index ni el id interno.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from app.shared.exceptions.sync import MappingError

from .sync_config import TableSyncConfig
from .types import AirtableRecord, EntityDraft, FieldMapping

_MISSING = object()


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def pick_field(fields: dict[str, Any], candidates: Sequence[str]) -> Any:
    """Primer candidato presente y no vacío; _MISSING si ninguno."""
    for name in candidates:
        value = fields.get(name)
        if not _is_empty(value):
            return value
    return _MISSING


def map_field(record: AirtableRecord, mapping: FieldMapping) -> Any:
    raw = pick_field(record.fields, mapping.candidates)
    if raw is _MISSING:
        if mapping.required:
            raise MappingError(mapping.pg_column, f"falta el field '{mapping.primary_field}'")
        raw = None

    if mapping.transform is None:
        value = raw
    else:
        try:
            value = mapping.transform(raw)
        except (TypeError, ValueError) as e:
            raise MappingError(mapping.pg_column, str(e)) from e

    if mapping.required and _is_empty(value):
        raise MappingError(mapping.pg_column, f"valor vacío en '{mapping.primary_field}'")
    return value


def map_record_to_entity(
    record: AirtableRecord,
    *,
    config: TableSyncConfig,
    only: Optional[Sequence[FieldMapping]] = None,
) -> EntityDraft:
    """
    Mapea un AirtableRecord a un draft listo para upsert.

    Si se pasa `only`, se mapean únicamente esos campos (update parcial).
    """
    mappings = config.field_mappings if only is None else only
    values = {m.pg_column: map_field(record, m) for m in mappings}
    return EntityDraft(
        external_id=record.record_id,
        last_modified=record.last_modified,
        values=values,
    )
