"""
Evento de webhook de Airtable.

Transitorio: se consume una vez y solo queda en el log de auditoría.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Tuple

from app.shared.constants.sync_constants import TableKind, WebhookEventType


@dataclass(frozen=True)
class WebhookEvent:
    event_type: WebhookEventType
    table_kind: TableKind
    external_id: str
    changed_fields: Tuple[str, ...] = field(default_factory=tuple)
    received_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type.value,
            "tableKind": self.table_kind.value,
            "externalId": self.external_id,
            "changedFields": list(self.changed_fields),
            "receivedAt": self.received_at.isoformat() if self.received_at else None,
        }
