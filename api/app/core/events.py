"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from loguru import logger

from app.core.config import settings
from app.infrastructure.database.session import AsyncSessionLocal, close_db, init_db
from app.infrastructure.documents.document_executor import shutdown_executor
from app.infrastructure.external.airtable_sync.sync_service import SyncEngine, build_sync_engine
from app.shared.constants.sync_constants import SYNC_CYCLE_ORDER
from app.shared.utils.audit_logger import AuditLogger

SYNC_CYCLE_JOB_ID = "airtable_sync_cycle"


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicacion."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            _validate_config()

            # Crea tablas si no existen (en produccion manda alembic)
            await init_db()
            logger.info("Base de datos inicializada")

            AuditLogger.initialize()
            logger.info("Sistema de auditoria inicializado")

            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            app.state.sync_engine = None
            app.state.scheduler = _start_scheduler(app)

            logger.success("Aplicacion iniciada correctamente")
            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida que la configuracion critica este presente."""
    warnings = []

    if not settings.airtable_configured:
        warnings.append("AIRTABLE_TOKEN / AIRTABLE_BASE_ID no configurados - la sync no funcionara")
    if not settings.AIRTABLE_WEBHOOK_SECRET:
        warnings.append("AIRTABLE_WEBHOOK_SECRET vacio - el webhook acepta cualquier request")
    if not settings.CRON_SECRET:
        warnings.append("CRON_SECRET vacio - los triggers de sync no requieren token")

    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def _start_scheduler(app: FastAPI) -> Optional[AsyncIOScheduler]:
    """Programa el ciclo completo cada SYNC_INTERVAL_MINUTES (0 = desactivado)."""
    if settings.SYNC_INTERVAL_MINUTES <= 0 or not settings.airtable_configured:
        logger.info("Ciclo de sync programado desactivado")
        return None

    engine = build_sync_engine(settings, session_factory=AsyncSessionLocal)
    app.state.sync_engine = engine

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_scheduled_cycle,
        trigger=IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
        args=[engine],
        id=SYNC_CYCLE_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Ciclo de sync programado cada {settings.SYNC_INTERVAL_MINUTES} min")
    return scheduler


async def run_scheduled_cycle(engine: SyncEngine) -> None:
    """Job del scheduler: un fallo se loguea y se reintenta en el siguiente tick."""
    runs, link_result = await engine.run_cycle(SYNC_CYCLE_ORDER)
    for run in runs:
        logger.info(f"Ciclo programado {run.table_kind.value}: {run.to_dict()}")
    if link_result is not None:
        logger.info(f"Ciclo programado enlazado: {link_result.to_dict()}")


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    access_host = "localhost" if settings.HOST == "0.0.0.0" else settings.HOST
    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Webhook:     {base_url}/api/v1/webhooks/airtable</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler detenido")

        shutdown_executor()
        logger.info("Pool de documentos cerrado")

        await close_db()
        logger.info("Conexiones de base de datos cerradas")

        AuditLogger.shutdown()
        logger.success("Aplicacion cerrada correctamente")

    return shutdown
