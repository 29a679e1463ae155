"""
Excepciones del motor de sincronización.

Taxonomía:
- SyncFatalException: no se alcanza Airtable o el store; aborta la corrida.
- Errores por registro / documento (MappingError, ExtractionError,
  DocumentFetchError, LinkUnresolved, LinkConflict): se registran en el
  SyncRun y la corrida continúa.
- StaleUpdate: actualización más vieja que lo guardado; se descarta en silencio.
"""
from typing import Optional

from app.shared.exceptions.base import AppException


class SyncFatalException(AppException):
    """La corrida no puede continuar (conectividad con Airtable o el store)."""

    def __init__(self, message: str, details=None):
        super().__init__(
            message=message,
            status_code=503,
            error_code="SYNC_FATAL",
            details=details
        )


class SyncRecordError(Exception):
    """Base de errores acotados a un registro o documento."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class MappingError(SyncRecordError):
    """Campo requerido ausente o con forma inválida."""

    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(f"{field}: {reason}")


class ExtractionError(SyncRecordError):
    """Documento ilegible (corrupto, cifrado, no es PDF)."""


class DocumentFetchError(SyncRecordError):
    """No se pudo descargar el documento."""

    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"{url}: {reason}")


class StaleUpdate(SyncRecordError):
    """El lastModifiedAt entrante es más viejo que el guardado."""


class LinkUnresolved(SyncRecordError):
    """El padre referenciado aún no fue sincronizado."""

    def __init__(self, parent_external_id: str, reason: Optional[str] = None):
        self.parent_external_id = parent_external_id
        super().__init__(reason or f"parent {parent_external_id} not synced yet")


class LinkConflict(SyncRecordError):
    """El hijo ya está enlazado a otro padre; requiere unlink explícito."""
