"""
Resolución de relaciones hijo -> padre por external id.

Cada hijo guarda las refs (record ids de Airtable) al padre tal como
vienen del registro. Después de sincronizar ambos lados, el resolver
traduce la primera ref a id interno y escribe project_id.

Reglas:
- Padre aún no sincronizado -> LinkUnresolved (se reintenta en la próxima corrida).
- Hijo ya enlazado a otro padre -> LinkConflict; re-enlazar exige unlink explícito.
- Mismo padre -> no-op.
"""

from __future__ import annotations

from typing import Callable, Mapping

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.entities.sync_run import LinkResult
from app.infrastructure.repositories.entity_repository import EntityRepository
from app.shared.constants.sync_constants import TableKind
from app.shared.exceptions.domain import EntityNotFoundException, ValidationException
from app.shared.exceptions.sync import LinkConflict, LinkUnresolved

from .sync_config import TableSyncConfig

PARENT_FK_COLUMN = "project_id"


class LinkResolver:
    def __init__(
        self,
        *,
        session_factory: Callable[[], AsyncSession],
        table_configs: Mapping[TableKind, TableSyncConfig],
    ) -> None:
        self._session_factory = session_factory
        self._configs = table_configs

    def _child_config(self, child_kind: TableKind) -> TableSyncConfig:
        config = self._configs.get(child_kind)
        if config is None or not config.parent_refs_column:
            raise ValidationException(
                f"La tabla '{child_kind.value}' no tiene referencias a un padre",
                field="childKind",
            )
        return config

    async def link_children_to_parents(
        self, child_kind: TableKind, parent_kind: TableKind
    ) -> LinkResult:
        child_config = self._child_config(child_kind)
        parent_config = self._configs[parent_kind]
        result = LinkResult()

        async with self._session_factory() as session:
            children_repo = EntityRepository(session, child_config.model)
            parents_repo = EntityRepository(session, parent_config.model)

            children = [
                child for child in await children_repo.list_all()
                if getattr(child, child_config.parent_refs_column)
            ]
            first_refs = {
                child.id: getattr(child, child_config.parent_refs_column)[0] for child in children
            }
            parent_ids = await parents_repo.ids_by_external_id(first_refs.values())

            for child in children:
                ref = first_refs[child.id]
                parent_id = parent_ids.get(ref)
                current = getattr(child, PARENT_FK_COLUMN)

                if parent_id is None:
                    error = LinkUnresolved(ref)
                    result.add_error(child.external_id, error.reason)
                    logger.warning(f"Enlace pendiente para {child.external_id}: {error.reason}")
                    continue
                if current == parent_id:
                    continue
                if current is not None:
                    error = LinkConflict(
                        f"already linked to project {current}, unlink before relinking to {ref}"
                    )
                    result.add_error(child.external_id, error.reason)
                    logger.warning(f"Conflicto de enlace para {child.external_id}: {error.reason}")
                    continue

                await children_repo.set_project(child, parent_id)
                result.linked += 1

            await session.commit()

        logger.info(
            f"Enlazado {child_kind.value} -> {parent_kind.value}: "
            f"linked={result.linked}, errores={len(result.errors)}"
        )
        return result

    async def unlink(self, child_kind: TableKind, entity_id: int) -> bool:
        """Quita el enlace al padre. False si el hijo no estaba enlazado."""
        child_config = self._child_config(child_kind)

        async with self._session_factory() as session:
            repo = EntityRepository(session, child_config.model)
            child = await repo.get_by_id(entity_id)
            if child is None:
                raise EntityNotFoundException(child_kind.value, entity_id)
            if getattr(child, PARENT_FK_COLUMN) is None:
                return False
            await repo.set_project(child, None)
            await session.commit()

        logger.info(f"Desenlazado {child_kind.value} id={entity_id}")
        return True
