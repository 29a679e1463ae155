"""
Configuración del sync (mapeo Airtable -> tabla local).

Aquí se define, por tipo de tabla:
- tabla y vista origen en Airtable
- modelo ORM destino
- mapeos de campos (con alias históricos)
- columnas con semántica especial (documentos de presupuesto, refs al padre)

Este módulo no realiza I/O: solo define configuración.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from app.shared.constants.sync_constants import TableKind

from .types import FieldMapping


@dataclass(frozen=True)
class TableSyncConfig:
    """
    Config de una tabla Airtable -> un modelo local.

    NOTA sobre las claves:
    - El PK local (id) lo asigna el store y es estable.
    - external_id guarda el record id de Airtable (UNIQUE por tipo).
    """

    kind: TableKind
    airtable_table_name: str
    field_mappings: Sequence[FieldMapping]
    model: type
    airtable_view: Optional[str] = None
    supports_reconciliation: bool = True
    budget_urls_column: Optional[str] = None
    parent_refs_column: Optional[str] = None

    def mappings_for(self, changed_fields: Sequence[str]) -> list[FieldMapping]:
        """Mapeos afectados por una lista de campos cambiados (alias o columna)."""
        return [
            m for m in self.field_mappings
            if any(m.matches(name) for name in changed_fields)
        ]

    def mapping_for_column(self, pg_column: str) -> Optional[FieldMapping]:
        for m in self.field_mappings:
            if m.pg_column == pg_column:
                return m
        return None
