"""
AuditLogger - Registro de auditoria del motor de sync.

Un archivo diario en AUDIT_LOG_DIR con una linea JSON por:
- evento de webhook consumido (unica persistencia de los eventos)
- corrida de sync terminada
- corrida de enlazado
"""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from app.core.config import settings


class AuditLogger:
    """
    Gestor del log de auditoria.

    Uso:
        # Al inicio de la app
        AuditLogger.initialize()

        # Al terminar una corrida
        AuditLogger.log_sync_run(run.to_dict())
    """

    AUDIT_CONTEXT = "audit"
    FILE_TIMESTAMP_FORMAT = "%Y-%m-%d"

    _sink_id: Optional[int] = None
    _initialized: bool = False

    @classmethod
    def initialize(cls, log_dir: Optional[str] = None) -> None:
        """
        Crea la carpeta y registra el sink filtrado por contexto.
        Debe llamarse al inicio de la aplicacion.
        """
        if cls._initialized:
            return

        audit_dir = Path(log_dir or settings.AUDIT_LOG_DIR)
        audit_dir.mkdir(parents=True, exist_ok=True)

        cls._sink_id = logger.add(
            str(audit_dir / "audit_{time:YYYY-MM-DD}.jsonl"),
            format="{message}",
            filter=lambda record: record["extra"].get("context") == cls.AUDIT_CONTEXT,
            rotation="1 day",
            retention="30 days",
            level="INFO",
        )
        cls._initialized = True
        logger.info(f"AuditLogger inicializado en {audit_dir}")

    @classmethod
    def shutdown(cls) -> None:
        if cls._sink_id is not None:
            logger.remove(cls._sink_id)
        cls._sink_id = None
        cls._initialized = False

    @classmethod
    def _write(cls, entry_type: str, payload: Dict[str, Any]) -> None:
        entry = {
            "type": entry_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        logger.bind(context=cls.AUDIT_CONTEXT).info(
            json.dumps(entry, ensure_ascii=False, default=str)
        )

    @classmethod
    def log_webhook_event(
        cls,
        event: Dict[str, Any],
        *,
        success: bool,
        updates: Optional[List[str]] = None,
        error: Optional[str] = None,
    ) -> None:
        cls._write(
            "WEBHOOK_EVENT",
            {"event": event, "success": success, "updates": updates or [], "error": error},
        )

    @classmethod
    def log_sync_run(cls, run: Dict[str, Any]) -> None:
        cls._write("SYNC_RUN", {"run": run})

    @classmethod
    def log_link_result(cls, child_kind: str, result: Dict[str, Any]) -> None:
        cls._write("LINK_RUN", {"childKind": child_kind, "result": result})
