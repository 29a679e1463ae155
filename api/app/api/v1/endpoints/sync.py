"""
Triggers manuales del motor de sync (cron externo, operadores).

Todos requieren `Authorization: Bearer <CRON_SECRET>` cuando el secreto
esta configurado.
"""
from fastapi import APIRouter, Depends, status
from loguru import logger

from app.api.v1.dependencies.use_case_deps import get_sync_use_cases, require_cron_token
from app.application.dto.sync_dto import (
    BudgetIndexResponseDTO,
    BudgetRecomputeRequestDTO,
    FullSyncRequestDTO,
    LinkRequestDTO,
    LinkResultDTO,
    SyncCycleResponseDTO,
    SyncRunResponseDTO,
    UnlinkRequestDTO,
    UnlinkResponseDTO,
)
from app.application.use_cases.sync_use_cases import SyncUseCases


router = APIRouter(prefix="/sync", tags=["Sync"], dependencies=[Depends(require_cron_token)])
budget_router = APIRouter(
    prefix="/budget-index", tags=["Sync"], dependencies=[Depends(require_cron_token)]
)


@router.post(
    "/full",
    response_model=SyncRunResponseDTO,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    summary="FullSync de una tabla de Airtable"
)
async def full_sync(
    body: FullSyncRequestDTO,
    use_cases: SyncUseCases = Depends(get_sync_use_cases)
) -> SyncRunResponseDTO:
    """
    Recorre todas las paginas de la tabla y hace upsert registro a registro.

    Los errores por registro vuelven en `errors`; solo un fallo de
    conectividad (Airtable o base de datos) responde 503.
    """
    logger.info(f"FullSync {body.table_kind.value} solicitado desde API")
    return await use_cases.run_full_sync(body.table_kind)


@router.post(
    "/cycle",
    response_model=SyncCycleResponseDTO,
    response_model_by_alias=True,
    summary="Ciclo completo: proyectos, propiedades y enlazado"
)
async def sync_cycle(use_cases: SyncUseCases = Depends(get_sync_use_cases)) -> SyncCycleResponseDTO:
    logger.info("Ciclo de sync solicitado desde API")
    return await use_cases.run_cycle()


@router.post(
    "/link",
    response_model=LinkResultDTO,
    response_model_by_alias=True,
    summary="Enlaza hijos con su padre por external id"
)
async def link(
    body: LinkRequestDTO,
    use_cases: SyncUseCases = Depends(get_sync_use_cases)
) -> LinkResultDTO:
    return await use_cases.link(body.child_kind, body.parent_kind)


@router.post(
    "/unlink",
    response_model=UnlinkResponseDTO,
    response_model_by_alias=True,
    summary="Quita el enlace de una entidad a su padre"
)
async def unlink(
    body: UnlinkRequestDTO,
    use_cases: SyncUseCases = Depends(get_sync_use_cases)
) -> UnlinkResponseDTO:
    """Paso previo obligatorio para re-enlazar a otro padre."""
    return await use_cases.unlink(body.table_kind, body.entity_id)


@budget_router.post(
    "/recompute",
    response_model=BudgetIndexResponseDTO,
    response_model_by_alias=True,
    summary="Recalcula el indice de presupuesto de una propiedad"
)
async def recompute_budget_index(
    body: BudgetRecomputeRequestDTO,
    use_cases: SyncUseCases = Depends(get_sync_use_cases)
) -> BudgetIndexResponseDTO:
    return await use_cases.recompute_budget_index(body.entity_id)
