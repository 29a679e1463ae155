"""
Casos de uso del motor de sincronización Airtable -> store.

Traducen DTOs de la API a llamadas del SyncEngine / LinkResolver y los
resultados de dominio a DTOs de respuesta.
"""
from typing import Optional

from loguru import logger

from app.application.dto.sync_dto import (
    BudgetIndexResponseDTO,
    LinkResultDTO,
    SyncCycleResponseDTO,
    SyncErrorDTO,
    SyncRunResponseDTO,
    UnlinkResponseDTO,
    WebhookEventDTO,
    WebhookResponseDTO,
)
from app.domain.entities.sync_run import LinkResult, SyncRun
from app.domain.entities.webhook_event import WebhookEvent
from app.infrastructure.external.airtable_sync.sync_service import (
    CancelCheck,
    SyncEngine,
    raise_if_failed,
)
from app.infrastructure.external.airtable_sync.types import utc_now
from app.shared.constants.sync_constants import SYNC_CYCLE_ORDER, TableKind
from app.shared.utils.audit_logger import AuditLogger


def _errors_to_dto(errors) -> list:
    return [SyncErrorDTO(external_id=e.external_id, reason=e.reason) for e in errors]


def run_to_dto(run: SyncRun) -> SyncRunResponseDTO:
    return SyncRunResponseDTO(
        table_kind=run.table_kind,
        state=run.state.value,
        created=run.created,
        updated=run.updated,
        skipped=run.skipped,
        orphaned=list(run.orphaned),
        linked=run.linked,
        cancelled=run.cancelled,
        errors=_errors_to_dto(run.errors),
        fatal_error=run.fatal_error,
    )


def link_to_dto(result: LinkResult) -> LinkResultDTO:
    return LinkResultDTO(linked=result.linked, errors=_errors_to_dto(result.errors))


class SyncUseCases:
    """
    Casos de uso de sincronización.

    Uso:
        use_cases = SyncUseCases(engine)
        result = await use_cases.run_full_sync(TableKind.PROJECTS)
    """

    def __init__(self, engine: SyncEngine):
        self.engine = engine

    async def run_full_sync(
        self, table_kind: TableKind, cancel: Optional[CancelCheck] = None
    ) -> SyncRunResponseDTO:
        """
        Ejecuta FullSync de una tabla.

        Raises:
            SyncFatalException: si Airtable o el store no están disponibles
        """
        run = await self.engine.full_sync(table_kind, cancel=cancel)
        return run_to_dto(raise_if_failed(run))

    async def run_cycle(self, cancel: Optional[CancelCheck] = None) -> SyncCycleResponseDTO:
        """Proyectos -> propiedades -> enlazado."""
        runs, link_result = await self.engine.run_cycle(SYNC_CYCLE_ORDER, cancel=cancel)
        return SyncCycleResponseDTO(
            runs=[run_to_dto(run) for run in runs],
            link=link_to_dto(link_result) if link_result is not None else None,
        )

    async def link(self, child_kind: TableKind, parent_kind: TableKind) -> LinkResultDTO:
        result = await self.engine.link_resolver.link_children_to_parents(child_kind, parent_kind)
        AuditLogger.log_link_result(child_kind.value, result.to_dict())
        return link_to_dto(result)

    async def unlink(self, table_kind: TableKind, entity_id: int) -> UnlinkResponseDTO:
        unlinked = await self.engine.link_resolver.unlink(table_kind, entity_id)
        return UnlinkResponseDTO(unlinked=unlinked)

    async def recompute_budget_index(self, entity_id: int) -> BudgetIndexResponseDTO:
        result = await self.engine.recompute_budget_index(entity_id)
        return BudgetIndexResponseDTO(updated=result.updated, errors=_errors_to_dto(result.errors))

    async def handle_webhook(self, dto: WebhookEventDTO) -> WebhookResponseDTO:
        """
        Aplica un evento de webhook.

        Cualquier excepción se registra en auditoría y se relanza: el
        endpoint responde 500 y Airtable puede reenviar el evento.
        """
        event = WebhookEvent(
            event_type=dto.event_type,
            table_kind=dto.table_kind,
            external_id=dto.external_id,
            changed_fields=tuple(dto.changed_fields),
            received_at=utc_now(),
        )
        logger.info(
            f"Webhook {event.event_type.value} {event.table_kind.value}/{event.external_id} "
            f"campos={list(event.changed_fields)}"
        )

        try:
            result = await self.engine.incremental_sync(event)
        except Exception as e:
            AuditLogger.log_webhook_event(event.to_dict(), success=False, error=str(e))
            raise

        updates = [result.describe()]
        updates.extend(f"Error {e.external_id}: {e.reason}" for e in result.errors)
        AuditLogger.log_webhook_event(event.to_dict(), success=True, updates=updates)
        return WebhookResponseDTO(
            success=True,
            message="Webhook processed successfully",
            updates=updates,
        )
