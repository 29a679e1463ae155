"""
Data Transfer Objects (DTOs) para la capa de aplicacion.
"""
from .sync_dto import (
    BudgetIndexResponseDTO,
    BudgetRecomputeRequestDTO,
    FullSyncRequestDTO,
    LinkRequestDTO,
    LinkResultDTO,
    SyncCycleResponseDTO,
    SyncErrorDTO,
    SyncRunResponseDTO,
    UnlinkRequestDTO,
    UnlinkResponseDTO,
    WebhookEventDTO,
    WebhookResponseDTO,
)

__all__ = [
    "BudgetIndexResponseDTO",
    "BudgetRecomputeRequestDTO",
    "FullSyncRequestDTO",
    "LinkRequestDTO",
    "LinkResultDTO",
    "SyncCycleResponseDTO",
    "SyncErrorDTO",
    "SyncRunResponseDTO",
    "UnlinkRequestDTO",
    "UnlinkResponseDTO",
    "WebhookEventDTO",
    "WebhookResponseDTO",
]
