"""
Webhook de Airtable: aplica IncrementalSync por evento.

Respuestas:
- 401 si el bearer no coincide con AIRTABLE_WEBHOOK_SECRET
- 200 {success, message, updates} si se aplico (o se descarto por stale)
- 500 {success: false, error} si fallo; Airtable reenvia el evento
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.v1.dependencies.use_case_deps import get_sync_use_cases, require_webhook_token
from app.application.dto.sync_dto import WebhookEventDTO, WebhookResponseDTO
from app.application.use_cases.sync_use_cases import SyncUseCases


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/airtable",
    response_model=WebhookResponseDTO,
    dependencies=[Depends(require_webhook_token)],
    summary="Evento de cambio de registro en Airtable"
)
async def airtable_webhook(
    body: WebhookEventDTO,
    use_cases: SyncUseCases = Depends(get_sync_use_cases)
):
    try:
        return await use_cases.handle_webhook(body)
    except Exception as e:
        logger.error(f"Error procesando webhook {body.table_kind.value}/{body.external_id}: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e)},
        )


@router.get("/airtable", summary="Liveness del webhook")
async def airtable_webhook_status() -> dict:
    return {
        "status": "ok",
        "message": "Airtable webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
