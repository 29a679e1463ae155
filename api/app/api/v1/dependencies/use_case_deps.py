"""
Dependencias para inyeccion de casos de uso y autenticacion de triggers.
"""
from typing import Optional

from fastapi import Depends, Header, Request

from app.application.use_cases.sync_use_cases import SyncUseCases
from app.core.config import settings
from app.infrastructure.database.session import AsyncSessionLocal
from app.infrastructure.external.airtable_sync.sync_service import SyncEngine, build_sync_engine
from app.infrastructure.security.bearer_token_verifier import BearerTokenVerifier
from app.shared.exceptions.auth import UnauthorizedException


def get_sync_engine(request: Request) -> SyncEngine:
    """
    Motor de sync compartido por la aplicacion.

    Se construye la primera vez y queda en app.state para que los locks
    por registro sean los mismos entre requests.
    """
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        engine = build_sync_engine(settings, session_factory=AsyncSessionLocal)
        request.app.state.sync_engine = engine
    return engine


def get_sync_use_cases(engine: SyncEngine = Depends(get_sync_engine)) -> SyncUseCases:
    """
    Dependencia para obtener los casos de uso de sync.

    Returns:
        SyncUseCases: Instancia de casos de uso de sincronizacion
    """
    return SyncUseCases(engine)


def require_cron_token(authorization: Optional[str] = Header(default=None)) -> None:
    """Protege los triggers manuales con CRON_SECRET (si esta configurado)."""
    if not BearerTokenVerifier(settings.CRON_SECRET).verify(authorization):
        raise UnauthorizedException("Token de cron invalido")


def require_webhook_token(authorization: Optional[str] = Header(default=None)) -> None:
    """Protege el webhook de Airtable con AIRTABLE_WEBHOOK_SECRET (si esta configurado)."""
    if not BearerTokenVerifier(settings.AIRTABLE_WEBHOOK_SECRET).verify(authorization):
        raise UnauthorizedException("Token de webhook invalido")
