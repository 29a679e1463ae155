"""
DTOs de los triggers del motor de sync (full sync, enlazado, índice, webhook).

Los cuerpos JSON usan camelCase; los DTOs aceptan también snake_case.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.shared.constants.sync_constants import TableKind, WebhookEventType


class CamelDTO(BaseModel):
    """Base con alias camelCase."""

    class Config:
        populate_by_name = True


class SyncErrorDTO(CamelDTO):
    external_id: str = Field(..., alias="externalId")
    reason: str


class FullSyncRequestDTO(CamelDTO):
    table_kind: TableKind = Field(..., alias="tableKind", description="Tabla a sincronizar")


class SyncRunResponseDTO(CamelDTO):
    """Resultado de una corrida de FullSync."""

    table_kind: TableKind = Field(..., alias="tableKind")
    state: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    orphaned: List[str] = Field(default_factory=list, description="IDs locales ausentes en Airtable")
    linked: int = 0
    cancelled: bool = False
    errors: List[SyncErrorDTO] = Field(default_factory=list)
    fatal_error: Optional[str] = Field(None, alias="fatalError")


class LinkRequestDTO(CamelDTO):
    child_kind: TableKind = Field(TableKind.PROPERTIES, alias="childKind")
    parent_kind: TableKind = Field(TableKind.PROJECTS, alias="parentKind")


class LinkResultDTO(CamelDTO):
    linked: int = 0
    errors: List[SyncErrorDTO] = Field(default_factory=list)


class SyncCycleResponseDTO(CamelDTO):
    """Ciclo completo: proyectos, propiedades y enlazado."""

    runs: List[SyncRunResponseDTO]
    link: Optional[LinkResultDTO] = None


class UnlinkRequestDTO(CamelDTO):
    table_kind: TableKind = Field(TableKind.PROPERTIES, alias="tableKind")
    entity_id: int = Field(..., alias="entityId", ge=1)


class UnlinkResponseDTO(CamelDTO):
    unlinked: bool


class BudgetRecomputeRequestDTO(CamelDTO):
    entity_id: int = Field(..., alias="entityId", ge=1)


class BudgetIndexResponseDTO(CamelDTO):
    updated: bool
    errors: List[SyncErrorDTO] = Field(default_factory=list)


class WebhookEventDTO(CamelDTO):
    """Cuerpo del webhook de Airtable."""

    event_type: WebhookEventType = Field(..., alias="eventType")
    table_kind: TableKind = Field(..., alias="tableKind")
    external_id: str = Field(..., alias="externalId", min_length=1)
    changed_fields: List[str] = Field(default_factory=list, alias="changedFields")
    timestamp: Optional[datetime] = None


class WebhookResponseDTO(CamelDTO):
    success: bool
    message: str
    updates: List[str] = Field(default_factory=list)
