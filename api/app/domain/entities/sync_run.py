"""
Resultados de corridas de sincronización.

SyncRun es efímero: se devuelve al caller y se registra en el log de auditoría,
nunca se persiste como entidad.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.shared.constants.sync_constants import SyncRunState, TableKind, UpsertOutcome


@dataclass(frozen=True)
class SyncErrorEntry:
    """Error acotado a un registro o documento."""

    external_id: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"externalId": self.external_id, "reason": self.reason}


@dataclass
class SyncRun:
    """
    Acumulador de una corrida.

    Los contadores y la lista de errores se modifican bajo un lock porque los
    workers de registros y de documentos pueden reportar en paralelo.
    """

    table_kind: TableKind
    state: SyncRunState = SyncRunState.IDLE
    created: int = 0
    updated: int = 0
    skipped: int = 0
    orphaned: List[str] = field(default_factory=list)
    linked: int = 0
    cancelled: bool = False
    errors: List[SyncErrorEntry] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    fatal_error: Optional[str] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def transition(self, state: SyncRunState) -> None:
        # Failed es terminal
        if self.state is SyncRunState.FAILED:
            return
        self.state = state

    def record_outcome(self, outcome: UpsertOutcome) -> None:
        with self._lock:
            if outcome is UpsertOutcome.CREATED:
                self.created += 1
            elif outcome is UpsertOutcome.UPDATED:
                self.updated += 1
            else:
                self.skipped += 1

    def add_error(self, external_id: str, reason: str) -> None:
        with self._lock:
            self.errors.append(SyncErrorEntry(external_id=external_id, reason=reason))

    def fail(self, reason: str) -> None:
        self.fatal_error = reason
        self.state = SyncRunState.FAILED

    @property
    def succeeded(self) -> bool:
        return self.state is SyncRunState.DONE

    def to_dict(self) -> Dict[str, Any]:
        """Formato del trigger de full sync."""
        return {
            "tableKind": self.table_kind.value,
            "state": self.state.value,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "orphaned": list(self.orphaned),
            "linked": self.linked,
            "cancelled": self.cancelled,
            "errors": [e.to_dict() for e in self.errors],
            "fatalError": self.fatal_error,
        }


@dataclass
class LinkResult:
    """Resultado de LinkResolver.link_children_to_parents."""

    linked: int = 0
    errors: List[SyncErrorEntry] = field(default_factory=list)

    def add_error(self, external_id: str, reason: str) -> None:
        self.errors.append(SyncErrorEntry(external_id=external_id, reason=reason))

    def to_dict(self) -> Dict[str, Any]:
        return {"linked": self.linked, "errors": [e.to_dict() for e in self.errors]}


@dataclass
class IncrementalResult:
    """Resultado de aplicar un evento de webhook."""

    external_id: str
    outcome: UpsertOutcome
    applied_fields: List[str] = field(default_factory=list)
    errors: List[SyncErrorEntry] = field(default_factory=list)

    def describe(self) -> str:
        if self.outcome is UpsertOutcome.CREATED:
            return f"Created {self.external_id}"
        if self.outcome is UpsertOutcome.UPDATED:
            return f"Updated {self.external_id}: {', '.join(self.applied_fields)}"
        if self.outcome is UpsertOutcome.STALE:
            return f"Discarded stale update for {self.external_id}"
        return f"No changes for {self.external_id}"


@dataclass
class BudgetIndexResult:
    """Resultado del recálculo del índice de presupuesto de una entidad."""

    updated: bool = False
    errors: List[SyncErrorEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"updated": self.updated, "errors": [e.to_dict() for e in self.errors]}
