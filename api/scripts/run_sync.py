"""
CLI: sincronizacion Airtable -> base relacional.

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) cuando no se usa el scheduler
    interno (SYNC_INTERVAL_MINUTES=0).

Variables de entorno requeridas:
  - AIRTABLE_TOKEN
  - AIRTABLE_BASE_ID
  - DATABASE_URL

Ejecucion:
  python scripts/run_sync.py                       # ciclo completo + enlazado
  python scripts/run_sync.py --kind properties --no-link
  python scripts/run_sync.py --recompute 42        # solo indice de presupuesto
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# .env del backend primero, luego el de la raiz del repo
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from app.core.config import settings
from app.infrastructure.database.session import AsyncSessionLocal, close_db, init_db
from app.infrastructure.documents.document_executor import shutdown_executor
from app.infrastructure.external.airtable_sync.sync_service import build_sync_engine
from app.shared.constants.sync_constants import SYNC_CYCLE_ORDER, SyncRunState, TableKind
from app.shared.utils.audit_logger import AuditLogger

KIND_CHOICES = [kind.value for kind in TableKind] + ["all"]


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync Airtable -> base relacional")
    parser.add_argument(
        "--kind",
        choices=KIND_CHOICES,
        default="all",
        help="Tabla a sincronizar ('all' = proyectos, propiedades y enlazado).",
    )
    parser.add_argument(
        "--no-link",
        action="store_true",
        help="No ejecutar el enlazado hijo -> padre al terminar.",
    )
    parser.add_argument(
        "--recompute",
        type=int,
        metavar="ENTITY_ID",
        help="Solo recalcula el indice de presupuesto de una propiedad.",
    )
    return parser.parse_args(argv)


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


async def _run(args: argparse.Namespace) -> int:
    await init_db()
    AuditLogger.initialize()
    engine = build_sync_engine(settings, session_factory=AsyncSessionLocal)

    if args.recompute is not None:
        result = await engine.recompute_budget_index(args.recompute)
        _print(result.to_dict())
        return 0

    if args.kind == "all" and not args.no_link:
        runs, link_result = await engine.run_cycle(SYNC_CYCLE_ORDER)
        for run in runs:
            _print(run.to_dict())
        if link_result is not None:
            _print(link_result.to_dict())
    else:
        kinds = SYNC_CYCLE_ORDER if args.kind == "all" else (TableKind(args.kind),)
        runs = []
        for kind in kinds:
            run = await engine.full_sync(kind, link=not args.no_link)
            _print(run.to_dict())
            runs.append(run)
            if run.state is SyncRunState.FAILED:
                break

    failed = [run for run in runs if run.state is SyncRunState.FAILED]
    if failed:
        logger.error(f"Sync con {len(failed)} corrida(s) fallida(s)")
        return 1
    return 0


async def _run_and_close(args: argparse.Namespace) -> int:
    try:
        return await _run(args)
    finally:
        await close_db()


def main(argv=None) -> int:
    args = _parse_args(argv)
    try:
        return asyncio.run(_run_and_close(args))
    finally:
        shutdown_executor()
        AuditLogger.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
