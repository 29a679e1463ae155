"""
Repositorio de entidades sincronizadas (proyectos y propiedades).

Operaciones del store que usa el motor de sync:
- alta por external_id y guardia de monotonía (lastModified)
- update parcial de columnas
- enumeración completa de external_ids por tabla
- escritura de budget_index y de project_id
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.external.airtable_sync.types import EntityDraft, ensure_utc
from app.shared.constants.sync_constants import UpsertOutcome


class EntityRepository:
    """Repositorio genérico sobre un modelo con columnas de sync."""

    def __init__(self, db: AsyncSession, model: type):
        self.db = db
        self.model = model

    async def get_by_id(self, entity_id: int):
        result = await self.db.execute(
            select(self.model).where(self.model.id == entity_id)
        )
        return result.scalars().first()

    async def get_by_external_id(self, external_id: str):
        result = await self.db.execute(
            select(self.model).where(self.model.external_id == external_id)
        )
        return result.scalars().first()

    async def list_all(self) -> List[Any]:
        result = await self.db.execute(select(self.model).order_by(self.model.id))
        return list(result.scalars().all())

    async def list_external_ids(self) -> Set[str]:
        """Conjunto completo de external_ids guardados para este tipo."""
        result = await self.db.execute(select(self.model.external_id))
        return {row for row in result.scalars().all() if row}

    async def ids_by_external_id(self, external_ids: Iterable[str]) -> Dict[str, int]:
        wanted = list(set(external_ids))
        if not wanted:
            return {}
        result = await self.db.execute(
            select(self.model.external_id, self.model.id).where(
                self.model.external_id.in_(wanted)
            )
        )
        return {external_id: entity_id for external_id, entity_id in result.all()}

    async def insert(self, draft: EntityDraft, *, synced_at: datetime):
        entity = self.model(
            external_id=draft.external_id,
            external_modified_at=ensure_utc(draft.last_modified),
            synced_at=synced_at,
            created_at=synced_at,
            updated_at=synced_at,
            **draft.values,
        )
        self.db.add(entity)
        await self.db.flush()
        return entity

    def apply_values(
        self,
        entity,
        values: Dict[str, Any],
        *,
        last_modified: datetime,
        synced_at: datetime,
    ) -> None:
        for column, value in values.items():
            setattr(entity, column, value)
        entity.external_modified_at = ensure_utc(last_modified)
        entity.synced_at = synced_at
        entity.updated_at = synced_at

    @staticmethod
    def changed_values(entity, values: Dict[str, Any]) -> Dict[str, Any]:
        """Subconjunto de `values` que difiere de lo guardado en la entidad."""
        return {
            column: value
            for column, value in values.items()
            if not _same_value(getattr(entity, column), value)
        }

    async def save_budget_index(
        self, entity, index_json: Optional[Dict[str, str]], *, indexed_at: Optional[datetime]
    ) -> None:
        entity.budget_index = index_json
        entity.budget_indexed_at = indexed_at
        await self.db.flush()

    async def set_project(self, entity, project_id: Optional[int]) -> None:
        entity.project_id = project_id
        await self.db.flush()


def compare_modified(entity, incoming: datetime) -> UpsertOutcome:
    """UPDATED si incoming es más nuevo, SKIPPED si es igual, STALE si es más viejo."""
    stored = entity.external_modified_at
    if stored is None:
        return UpsertOutcome.UPDATED
    stored = ensure_utc(stored)
    incoming = ensure_utc(incoming)
    if incoming > stored:
        return UpsertOutcome.UPDATED
    if incoming == stored:
        return UpsertOutcome.SKIPPED
    return UpsertOutcome.STALE


_CENTS = Decimal("0.01")


def _same_value(stored: Any, incoming: Any) -> bool:
    # Las columnas Numeric guardan 2 decimales
    if isinstance(stored, Decimal) and isinstance(incoming, Decimal):
        return stored.quantize(_CENTS) == incoming.quantize(_CENTS)
    return stored == incoming
