"""
Entidades del dominio.
"""
from app.domain.entities.budget import CategoryIndex, CategoryKey
from app.domain.entities.sync_run import (
    BudgetIndexResult,
    IncrementalResult,
    LinkResult,
    SyncErrorEntry,
    SyncRun,
)
from app.domain.entities.webhook_event import WebhookEvent

__all__ = [
    "CategoryIndex",
    "CategoryKey",
    "BudgetIndexResult",
    "IncrementalResult",
    "LinkResult",
    "SyncErrorEntry",
    "SyncRun",
    "WebhookEvent",
]
