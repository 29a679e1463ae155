"""
Ejecutor de trabajo de documentos (descarga + extracción de PDF) en threads.

pypdf y requests son bloqueantes: se ejecutan en un ThreadPoolExecutor
dedicado para no bloquear el event loop de FastAPI/uvicorn.

Caracteristicas:
- ThreadPoolExecutor dedicado con limite explicito de workers
  (DOCUMENT_MAX_WORKERS), acota la memoria usada por PDFs grandes
- Semaforo por event loop que limita los documentos en vuelo
- Threads con nombre prefijado para identificarlos en logs

Uso:
    from app.infrastructure.documents.document_executor import run_document_task

    text = await run_document_task(extractor.extract, pdf_bytes)
"""
import asyncio
import atexit
import weakref
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

from loguru import logger

from app.core.config import settings


T = TypeVar("T")

DOCUMENT_MAX_WORKERS = max(1, settings.DOCUMENT_MAX_WORKERS)

_document_executor = ThreadPoolExecutor(
    max_workers=DOCUMENT_MAX_WORKERS,
    thread_name_prefix="documents-"
)

# asyncio.Semaphore queda ligado a un loop; se crea uno por loop activo.
_semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
    weakref.WeakKeyDictionary()
)
_shutdown_done = False


def _get_semaphore(loop: asyncio.AbstractEventLoop) -> asyncio.Semaphore:
    semaphore = _semaphores.get(loop)
    if semaphore is None:
        semaphore = asyncio.Semaphore(DOCUMENT_MAX_WORKERS)
        _semaphores[loop] = semaphore
        logger.debug(f"Semaforo de documentos creado (max_concurrent: {DOCUMENT_MAX_WORKERS})")
    return semaphore


def shutdown_executor() -> None:
    """Cierra el executor de documentos (idempotente)."""
    global _shutdown_done
    if _shutdown_done:
        return
    _shutdown_done = True
    logger.info("Cerrando ThreadPoolExecutor de documentos...")
    _document_executor.shutdown(wait=True)
    logger.info("ThreadPoolExecutor de documentos cerrado")


atexit.register(shutdown_executor)


async def run_document_task(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Ejecuta una funcion bloqueante de documentos en el executor dedicado.

    Raises:
        Cualquier excepcion que la funcion original lance
    """
    if kwargs:
        func = partial(func, **kwargs)

    loop = asyncio.get_running_loop()
    async with _get_semaphore(loop):
        return await loop.run_in_executor(_document_executor, func, *args)


def get_executor_stats() -> dict:
    """Estadisticas del executor de documentos, para /health."""
    return {
        "max_workers": DOCUMENT_MAX_WORKERS,
        "thread_name_prefix": "documents-",
        "shutdown": _shutdown_done,
    }
