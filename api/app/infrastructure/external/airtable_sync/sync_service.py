"""
Motor de sincronización Airtable -> store local.

Diseño (resumen):
- FullSync: pagina todos los registros de una tabla, mapea y hace upsert
  por external_id; al final reporta huérfanos (nunca borra).
- IncrementalSync: un evento de webhook -> getRecord -> update parcial
  restringido a los campos cambiados.
- Índice de presupuesto: cuando cambian los documentos de una entidad,
  se recalcula y reemplaza budget_index.

Estrategia de idempotencia:
- Cada entidad guarda external_modified_at (último lastModified aplicado).
- Un lastModified más nuevo se aplica; igual -> solo las columnas que aún
  difieren (un update parcial pudo dejar campos sin aplicar), más viejo ->
  StaleUpdate descartado (log DEBUG).
- No hay cursor global: las corridas no tienen estado y se pueden relanzar.

Errores:
- Por registro/documento: se agregan al SyncRun y la corrida sigue.
- Airtable inalcanzable o store caído: la corrida pasa a FAILED.
"""

from __future__ import annotations

import asyncio
import weakref
from typing import Any, Callable, Mapping, Optional, Sequence

from loguru import logger
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.services.budget_index_service import BudgetIndexService
from app.domain.entities.sync_run import (
    BudgetIndexResult,
    IncrementalResult,
    LinkResult,
    SyncRun,
)
from app.domain.entities.webhook_event import WebhookEvent
from app.infrastructure.documents.document_fetcher import DocumentFetcher
from app.infrastructure.repositories.entity_repository import EntityRepository, compare_modified
from app.shared.constants.sync_constants import SyncRunState, TableKind, UpsertOutcome
from app.shared.exceptions.domain import EntityNotFoundException, ValidationException
from app.shared.exceptions.sync import MappingError, StaleUpdate, SyncFatalException
from app.shared.utils.audit_logger import AuditLogger

from ..http_retry import RetryPolicy
from .airtable_client import AirtableApiError, AirtableClient, AirtableCredentials
from .link_resolver import LinkResolver
from .record_mapper import map_record_to_entity
from .sync_config import TableSyncConfig
from .table_mappings import table_configs_from_settings
from .types import AirtableRecord, utc_now

CancelCheck = Callable[[], bool]


class StoreUnavailableError(RuntimeError):
    """El store no responde (conexión caída); aborta la corrida."""


def _is_connectivity_error(error: SQLAlchemyError) -> bool:
    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


class SyncEngine:
    """
    Orquestador de sincronización para todas las tablas configuradas.

    Las llamadas a Airtable (requests, bloqueantes) se ejecutan con
    asyncio.to_thread; cada registro se escribe en su propia sesión y
    transacción (upsert atómico por registro).
    """

    def __init__(
        self,
        *,
        airtable: AirtableClient,
        session_factory: Callable[[], AsyncSession],
        table_configs: Mapping[TableKind, TableSyncConfig],
        budget_service: Optional[BudgetIndexService] = None,
        link_resolver: Optional[LinkResolver] = None,
        max_workers: int = 4,
    ) -> None:
        self._airtable = airtable
        self._session_factory = session_factory
        self._configs = dict(table_configs)
        self._budget = budget_service
        self._links = link_resolver or LinkResolver(
            session_factory=session_factory, table_configs=self._configs
        )
        self._max_workers = max(1, max_workers)
        self._record_locks: "weakref.WeakValueDictionary[tuple, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @property
    def link_resolver(self) -> LinkResolver:
        return self._links

    def config_for(self, kind: TableKind) -> TableSyncConfig:
        config = self._configs.get(kind)
        if config is None:
            raise ValidationException(f"Tabla no configurada: {kind}", field="tableKind")
        return config

    # ------------------------------------------------------------------
    # FullSync
    # ------------------------------------------------------------------

    async def full_sync(
        self,
        kind: TableKind,
        *,
        cancel: Optional[CancelCheck] = None,
        link: bool = True,
    ) -> SyncRun:
        """
        Sincroniza la tabla completa.

        `cancel` se consulta entre páginas; lo ya escrito queda confirmado.
        Si la tabla tiene refs a un padre y `link` es True, al final se
        ejecuta el LinkResolver.
        """
        config = self.config_for(kind)
        run = SyncRun(table_kind=kind, started_at=utc_now())
        seen_ids: set[str] = set()
        complete = False

        logger.info(
            f"FullSync '{kind.value}': Airtable '{config.airtable_table_name}'"
            f"{' vista ' + config.airtable_view if config.airtable_view else ''}"
        )

        try:
            run.transition(SyncRunState.FETCHING)
            pages = self._airtable.iter_pages(kind, view=config.airtable_view)
            semaphore = asyncio.Semaphore(self._max_workers)

            while True:
                if cancel is not None and cancel():
                    run.cancelled = True
                    logger.warning(f"FullSync '{kind.value}' cancelado entre páginas")
                    break

                page = await asyncio.to_thread(next, pages, None)
                if page is None:
                    complete = True
                    break

                run.transition(SyncRunState.MAPPING)
                seen_ids.update(record.record_id for record in page.records)

                run.transition(SyncRunState.UPSERTING)
                outcomes = await asyncio.gather(
                    *(self._sync_record(record, config, run, semaphore) for record in page.records),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
                run.transition(SyncRunState.FETCHING)

            if complete and config.supports_reconciliation:
                run.orphaned = await self._find_orphans(config, seen_ids)
                if run.orphaned:
                    logger.warning(
                        f"FullSync '{kind.value}': {len(run.orphaned)} huérfano(s) para revisión"
                    )

            if complete and link and config.parent_refs_column:
                run.transition(SyncRunState.LINKING)
                link_result = await self._links.link_children_to_parents(kind, TableKind.PROJECTS)
                run.linked = link_result.linked
                for error in link_result.errors:
                    run.add_error(error.external_id, error.reason)

            run.transition(SyncRunState.DONE)
        except AirtableApiError as e:
            run.fail(f"Airtable: {e}")
            logger.error(f"FullSync '{kind.value}' abortado: {e}")
        except (StoreUnavailableError, SQLAlchemyError) as e:
            run.fail(f"Store: {e}")
            logger.error(f"FullSync '{kind.value}' abortado (store): {e}")
        except Exception as e:
            run.fail(f"{type(e).__name__}: {e}")
            logger.exception(f"FullSync '{kind.value}' abortado por error inesperado")
            raise
        finally:
            run.finished_at = utc_now()
            AuditLogger.log_sync_run(run.to_dict())

        if run.succeeded:
            logger.success(
                f"FullSync '{kind.value}' terminado: created={run.created}, "
                f"updated={run.updated}, skipped={run.skipped}, errores={len(run.errors)}"
            )
        return run

    async def _sync_record(
        self,
        record: AirtableRecord,
        config: TableSyncConfig,
        run: SyncRun,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            try:
                draft = map_record_to_entity(record, config=config)
            except MappingError as e:
                run.add_error(record.record_id, str(e))
                logger.warning(f"Registro {record.record_id} no mapeable: {e}")
                return

            try:
                async with self._lock_for(config.kind, record.record_id):
                    outcome, entity_id, documents_changed = await self._upsert(draft, config)
            except SQLAlchemyError as e:
                if _is_connectivity_error(e):
                    raise StoreUnavailableError(str(e)) from e
                run.add_error(record.record_id, f"store: {type(e).__name__}: {e}")
                logger.warning(f"Upsert falló para {record.record_id}: {e}")
                return

            run.record_outcome(outcome)
            if not documents_changed:
                return
            try:
                budget = await self._refresh_budget(config, entity_id)
            except SQLAlchemyError as e:
                if _is_connectivity_error(e):
                    raise StoreUnavailableError(str(e)) from e
                run.add_error(record.record_id, f"budget index: {type(e).__name__}: {e}")
                return
            for error in budget.errors:
                run.add_error(error.external_id, error.reason)

    async def _upsert(self, draft, config: TableSyncConfig) -> tuple[UpsertOutcome, Optional[int], bool]:
        """
        Upsert atómico de un registro.

        Retorna (resultado, id interno, si cambiaron los documentos de presupuesto).
        """
        synced_at = utc_now()
        async with self._session_factory() as session:
            repo = EntityRepository(session, config.model)
            entity = await repo.get_by_external_id(draft.external_id)

            if entity is None:
                entity = await repo.insert(draft, synced_at=synced_at)
                await session.commit()
                documents_changed = bool(
                    config.budget_urls_column and draft.values.get(config.budget_urls_column)
                )
                return UpsertOutcome.CREATED, entity.id, documents_changed

            outcome = compare_modified(entity, draft.last_modified)
            if outcome is UpsertOutcome.STALE:
                logger.debug(f"StaleUpdate descartado: {draft.external_id}")
                return UpsertOutcome.SKIPPED, entity.id, False
            values = draft.values
            if outcome is UpsertOutcome.SKIPPED:
                # Mismo snapshot: completa lo que un update parcial no llegó a aplicar
                values = repo.changed_values(entity, draft.values)
                if not values:
                    return outcome, entity.id, False

            documents_changed = self._documents_changed(config, entity, values)
            repo.apply_values(
                entity, values, last_modified=draft.last_modified, synced_at=synced_at
            )
            await session.commit()
            return UpsertOutcome.UPDATED, entity.id, documents_changed

    @staticmethod
    def _documents_changed(config: TableSyncConfig, entity, values: dict[str, Any]) -> bool:
        column = config.budget_urls_column
        if not column or column not in values:
            return False
        before = list(getattr(entity, column) or [])
        after = list(values.get(column) or [])
        if before != after:
            return True
        # Documentos presentes pero nunca indexados
        return bool(after) and entity.budget_index is None

    async def _find_orphans(self, config: TableSyncConfig, seen_ids: set[str]) -> list[str]:
        async with self._session_factory() as session:
            local_ids = await EntityRepository(session, config.model).list_external_ids()
        return sorted(local_ids - seen_ids)

    def _lock_for(self, kind: TableKind, external_id: str) -> asyncio.Lock:
        key = (kind, external_id)
        lock = self._record_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._record_locks[key] = lock
        return lock

    # ------------------------------------------------------------------
    # IncrementalSync
    # ------------------------------------------------------------------

    async def incremental_sync(self, event: WebhookEvent) -> IncrementalResult:
        """
        Aplica un evento de webhook sobre un único registro.

        Raises:
            AirtableRecordNotFound: el registro ya no existe en Airtable
            AirtableApiError: Airtable inalcanzable
            MappingError: los campos cambiados tienen forma inválida
        """
        config = self.config_for(event.table_kind)
        record = await asyncio.to_thread(
            self._airtable.get_record, event.table_kind, event.external_id
        )

        async with self._lock_for(config.kind, record.record_id):
            result, entity_id, documents_changed = await self._apply_event(record, event, config)

        if documents_changed:
            budget = await self._refresh_budget(config, entity_id)
            result.errors.extend(budget.errors)

        logger.info(f"IncrementalSync '{event.table_kind.value}': {result.describe()}")
        return result

    async def _apply_event(
        self, record: AirtableRecord, event: WebhookEvent, config: TableSyncConfig
    ) -> tuple[IncrementalResult, Optional[int], bool]:
        synced_at = utc_now()
        async with self._session_factory() as session:
            repo = EntityRepository(session, config.model)
            entity = await repo.get_by_external_id(record.record_id)

            if entity is None:
                # No existe localmente: alta completa (autorreparación)
                draft = map_record_to_entity(record, config=config)
                entity = await repo.insert(draft, synced_at=synced_at)
                await session.commit()
                result = IncrementalResult(
                    external_id=record.record_id,
                    outcome=UpsertOutcome.CREATED,
                    applied_fields=list(draft.values),
                )
                documents_changed = bool(
                    config.budget_urls_column and draft.values.get(config.budget_urls_column)
                )
                return result, entity.id, documents_changed

            outcome = compare_modified(entity, record.last_modified)
            if outcome is UpsertOutcome.STALE:
                stale = StaleUpdate(
                    f"{record.last_modified.isoformat()} < {entity.external_modified_at}"
                )
                logger.debug(f"StaleUpdate descartado para {record.record_id}: {stale.reason}")
                return IncrementalResult(record.record_id, UpsertOutcome.STALE), entity.id, False
            mappings = config.mappings_for(event.changed_fields)
            draft = map_record_to_entity(record, config=config, only=mappings)
            values = draft.values
            if outcome is UpsertOutcome.SKIPPED:
                # Snapshot ya aplicado (quizá en parte): solo los campos nombrados que aún difieren
                values = repo.changed_values(entity, draft.values)
                if not values:
                    return IncrementalResult(record.record_id, UpsertOutcome.SKIPPED), entity.id, False

            documents_changed = self._documents_changed(config, entity, values)
            repo.apply_values(
                entity, values, last_modified=record.last_modified, synced_at=synced_at
            )
            await session.commit()

            if not values:
                # Ningún campo mapeado cambió; solo avanza external_modified_at
                return IncrementalResult(record.record_id, UpsertOutcome.SKIPPED), entity.id, False
            result = IncrementalResult(
                external_id=record.record_id,
                outcome=UpsertOutcome.UPDATED,
                applied_fields=list(values),
            )
            return result, entity.id, documents_changed

    # ------------------------------------------------------------------
    # Índice de presupuesto
    # ------------------------------------------------------------------

    async def _refresh_budget(self, config: TableSyncConfig, entity_id: int) -> BudgetIndexResult:
        if self._budget is None or not config.budget_urls_column:
            return BudgetIndexResult()
        async with self._session_factory() as session:
            repo = EntityRepository(session, config.model)
            entity = await repo.get_by_id(entity_id)
            if entity is None:
                return BudgetIndexResult()
            result = await self._budget.refresh_entity(repo, entity)
            await session.commit()
        return result

    async def recompute_budget_index(
        self, entity_id: int, kind: TableKind = TableKind.PROPERTIES
    ) -> BudgetIndexResult:
        """Re-ejecuta descarga + extracción + índice para una entidad."""
        config = self.config_for(kind)
        if self._budget is None or not config.budget_urls_column:
            raise ValidationException(
                f"La tabla '{kind.value}' no tiene documentos de presupuesto", field="tableKind"
            )

        async with self._session_factory() as session:
            repo = EntityRepository(session, config.model)
            entity = await repo.get_by_id(entity_id)
            if entity is None:
                raise EntityNotFoundException(kind.value, entity_id)
            result = await self._budget.refresh_entity(repo, entity)
            await session.commit()
        return result

    # ------------------------------------------------------------------
    # Ciclo completo
    # ------------------------------------------------------------------

    async def run_cycle(
        self,
        kinds: Sequence[TableKind],
        *,
        cancel: Optional[CancelCheck] = None,
    ) -> tuple[list[SyncRun], Optional[LinkResult]]:
        """
        Padres antes que hijos, y enlazado al final.

        Si una corrida falla (Airtable/store) no se continúa con las demás.
        """
        runs: list[SyncRun] = []
        for kind in kinds:
            run = await self.full_sync(kind, cancel=cancel, link=False)
            runs.append(run)
            if not run.succeeded or run.cancelled:
                return runs, None

        link_result: Optional[LinkResult] = None
        for kind in kinds:
            if self.config_for(kind).parent_refs_column:
                link_result = await self._links.link_children_to_parents(kind, TableKind.PROJECTS)
                AuditLogger.log_link_result(kind.value, link_result.to_dict())
        return runs, link_result


def raise_if_failed(run: SyncRun) -> SyncRun:
    """Convierte una corrida FAILED en SyncFatalException (503) para la API."""
    if run.state is SyncRunState.FAILED:
        raise SyncFatalException(
            run.fatal_error or "La sincronización falló",
            details={"run": run.to_dict()},
        )
    return run


class SyncConfigError(SyncFatalException):
    """Error de configuración del pipeline (credenciales ausentes)."""


def build_sync_engine(settings, *, session_factory: Callable[[], AsyncSession]) -> SyncEngine:
    """
    Constructor "oficial" del motor leyendo Settings.

    Requiere AIRTABLE_TOKEN y AIRTABLE_BASE_ID.
    """
    if not settings.airtable_configured:
        raise SyncConfigError("Faltan AIRTABLE_TOKEN / AIRTABLE_BASE_ID")

    retry_policy = RetryPolicy.from_settings(settings)
    table_configs = table_configs_from_settings(settings)
    airtable = AirtableClient(
        AirtableCredentials(token=settings.AIRTABLE_TOKEN, base_id=settings.AIRTABLE_BASE_ID),
        table_names={kind: config.airtable_table_name for kind, config in table_configs.items()},
        last_modified_field=settings.AIRTABLE_LAST_MOD_FIELD,
        base_url=settings.AIRTABLE_API_URL,
        retry_policy=retry_policy,
        page_size=settings.AIRTABLE_PAGE_SIZE,
    )
    budget_service = BudgetIndexService(
        DocumentFetcher(retry_policy=retry_policy, max_bytes=settings.DOCUMENT_MAX_BYTES)
    )
    return SyncEngine(
        airtable=airtable,
        session_factory=session_factory,
        table_configs=table_configs,
        budget_service=budget_service,
        max_workers=settings.SYNC_MAX_WORKERS,
    )
