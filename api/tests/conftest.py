"""
Configuración de fixtures para pytest.

La base de datos de tests es SQLite en memoria (aiosqlite) con StaticPool,
para que todas las sesiones del motor de sync vean la misma conexión.
"""
import os

# Antes de importar app.*: el engine global se crea al importar session.py
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SYNC_INTERVAL_MINUTES", "0")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, Iterable, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.infrastructure.database import models  # noqa: F401
from app.infrastructure.database.session import Base
from app.infrastructure.external.airtable_sync.airtable_client import (
    AirtableApiError,
    AirtableRecordNotFound,
)
from app.infrastructure.external.airtable_sync.types import AirtableRecord, RecordPage
from app.shared.constants.sync_constants import TableKind


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

BASE_TIME = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Instante relativo a BASE_TIME (para ordenar lastModified en tests)."""
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory sobre una base en memoria compartida por todas las sesiones."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


class FakeAirtable:
    """
    Doble de AirtableClient en memoria.

    - pages[kind]: lista de páginas (cada una lista de AirtableRecord)
    - records[(kind, id)]: lo que devuelve get_record
    - fail_on_page: índice de página en el que se simula Airtable caído
    """

    def __init__(self) -> None:
        self.pages: Dict[TableKind, List[List[AirtableRecord]]] = {}
        self.records: Dict[tuple, AirtableRecord] = {}
        self.fail_on_page: Optional[int] = None
        self.pages_served = 0

    def set_pages(self, kind: TableKind, pages: Iterable[Iterable[AirtableRecord]]) -> None:
        self.pages[kind] = [list(page) for page in pages]
        for page in self.pages[kind]:
            for record in page:
                self.records[(kind, record.record_id)] = record

    def put(self, record: AirtableRecord) -> None:
        self.records[(record.table_kind, record.record_id)] = record

    def iter_pages(self, kind, *, view=None, filter_formula=None, start_token=None):
        pages = self.pages.get(kind, [])
        for position, records in enumerate(pages):
            if self.fail_on_page is not None and position == self.fail_on_page:
                raise AirtableApiError("Airtable request falló: Reintentos agotados")
            self.pages_served += 1
            token = f"page-{position + 1}" if position + 1 < len(pages) else None
            yield RecordPage(records=records, next_page_token=token)

    def get_record(self, kind, record_id):
        record = self.records.get((kind, record_id))
        if record is None:
            raise AirtableRecordNotFound(f"Record {record_id} no existe en '{kind.value}'")
        return record


@pytest.fixture
def fake_airtable() -> FakeAirtable:
    return FakeAirtable()


@pytest.fixture
def make_record():
    """Factory de AirtableRecord: make_record(kind, id, fields, minutes=0)."""
    def _make(kind: TableKind, record_id: str, fields: dict, minutes: int = 0) -> AirtableRecord:
        return AirtableRecord(
            record_id=record_id,
            table_kind=kind,
            fields=dict(fields),
            last_modified=at(minutes),
        )
    return _make


def _pdf_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(lines: List[str]) -> bytes:
    """PDF mínimo de una página con una línea de texto Helvetica por elemento."""
    ops = ["BT", "/F1 12 Tf", "72 720 Td"]
    for position, line in enumerate(lines):
        if position:
            ops.append("0 -18 Td")
        ops.append(f"({_pdf_escape(line)}) Tj")
    ops.append("ET")
    content = "\n".join(ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length " + str(len(content)).encode() + b" >>\nstream\n" + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_offset = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n"
    ).encode()
    return bytes(out)


@pytest.fixture
def pdf_bytes():
    """Factory de PDFs con texto: pdf_bytes(["Fontaneria 350"])."""
    return build_pdf
