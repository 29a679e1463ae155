"""
Servicio de índice de presupuesto de una entidad.

Por cada URL de documento: descarga -> extracción de texto -> índice.
Los documentos se procesan en el executor de documentos (concurrencia
acotada). Los índices se combinan por unión de categorías respetando el
orden de las URLs, y el resultado reemplaza por completo el budget_index
guardado.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from loguru import logger

from app.application.services.category_indexer import CategoryIndexer
from app.domain.entities.budget import CategoryIndex, index_to_json, merge_indices
from app.domain.entities.sync_run import BudgetIndexResult, SyncErrorEntry
from app.infrastructure.documents.document_executor import run_document_task
from app.infrastructure.documents.document_fetcher import DocumentFetcher
from app.infrastructure.documents.text_extractor import TextExtractor
from app.infrastructure.external.airtable_sync.types import utc_now
from app.shared.exceptions.sync import DocumentFetchError, ExtractionError


TaskRunner = Callable[..., Awaitable[Any]]


@dataclass
class BudgetComputation:
    """Índice combinado + fallos por URL."""

    index: Optional[CategoryIndex]
    failures: List[Tuple[str, str]] = field(default_factory=list)


class BudgetIndexService:
    """
    Deriva y persiste budget_index.

    Reglas:
    - Sin URLs: si la entidad tenía índice se borra (None).
    - Fallo de una URL: se reporta y se guardan las demás.
    - Fallan todas: el índice guardado queda intacto.
    """

    def __init__(
        self,
        fetcher: DocumentFetcher,
        extractor: Optional[TextExtractor] = None,
        indexer: Optional[CategoryIndexer] = None,
        run_task: TaskRunner = run_document_task,
    ):
        self._fetcher = fetcher
        self._extractor = extractor or TextExtractor()
        self._indexer = indexer or CategoryIndexer()
        self._run_task = run_task

    def index_document(self, url: str) -> CategoryIndex:
        """Trabajo bloqueante de una URL (corre en un thread del executor)."""
        data = self._fetcher.fetch(url)
        text = self._extractor.extract(data)
        return self._indexer.build_index(text)

    async def _index_url(self, url: str) -> Tuple[str, Optional[CategoryIndex], Optional[str]]:
        try:
            index = await self._run_task(self.index_document, url)
        except DocumentFetchError as e:
            return url, None, e.reason
        except ExtractionError as e:
            return url, None, f"{url}: {e.reason}"
        except Exception as e:
            # Un documento nunca aborta la corrida: queda como fallo de esa URL
            logger.opt(exception=e).warning(f"Error inesperado procesando {url}")
            return url, None, f"{url}: {type(e).__name__}: {e}"
        return url, index, None

    async def compute(self, urls: Sequence[str]) -> BudgetComputation:
        outcomes = await asyncio.gather(*(self._index_url(url) for url in urls))

        indices: List[CategoryIndex] = []
        failures: List[Tuple[str, str]] = []
        for url, index, error in outcomes:
            if error is not None:
                failures.append((url, error))
            else:
                indices.append(index)

        if not indices:
            return BudgetComputation(index=None, failures=failures)
        return BudgetComputation(index=merge_indices(indices), failures=failures)

    async def refresh_entity(self, repo, entity) -> BudgetIndexResult:
        """Recalcula y guarda el índice de la entidad (sin commit)."""
        result = BudgetIndexResult()
        urls = list(entity.budget_pdf_urls or [])

        if not urls:
            if entity.budget_index is not None:
                await repo.save_budget_index(entity, None, indexed_at=utc_now())
                result.updated = True
                logger.info(f"Índice de presupuesto borrado para {entity.external_id} (sin documentos)")
            return result

        computation = await self.compute(urls)
        for url, reason in computation.failures:
            logger.warning(f"Documento de presupuesto falló para {entity.external_id}: {reason}")
            result.errors.append(SyncErrorEntry(external_id=entity.external_id, reason=reason))

        if computation.index is None:
            return result

        await repo.save_budget_index(
            entity, index_to_json(computation.index), indexed_at=utc_now()
        )
        result.updated = True
        logger.info(
            f"Índice de presupuesto actualizado para {entity.external_id}: "
            f"{len(computation.index)} categoría(s) desde {len(urls)} documento(s)"
        )
        return result
