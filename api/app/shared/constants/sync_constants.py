"""
Constantes del motor de sincronización Airtable -> PostgreSQL.
"""
from enum import Enum


class TableKind(str, Enum):
    """Tipos de tabla sincronizados desde Airtable."""
    PROJECTS = "projects"
    PROPERTIES = "properties"


class WebhookEventType(str, Enum):
    """Eventos aceptados por el webhook de Airtable."""
    RECORD_UPDATED = "recordUpdated"
    RECORD_CREATED = "recordCreated"


class SyncRunState(str, Enum):
    """Estados de una corrida de sync (por corrida, no por registro)."""
    IDLE = "idle"
    FETCHING = "fetching"
    MAPPING = "mapping"
    UPSERTING = "upserting"
    LINKING = "linking"
    DONE = "done"
    FAILED = "failed"


class UpsertOutcome(str, Enum):
    """Resultado de aplicar un registro sobre el store."""
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    STALE = "stale"


# Orden recomendado del ciclo completo: padres antes que hijos
SYNC_CYCLE_ORDER = (TableKind.PROJECTS, TableKind.PROPERTIES)
