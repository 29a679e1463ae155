"""
Tests de la descarga de documentos: límites de tamaño y errores por documento.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from app.infrastructure.documents.document_executor import get_executor_stats, run_document_task
from app.infrastructure.documents.document_fetcher import DocumentFetcher
from app.infrastructure.external.http_retry import RetryPolicy
from app.shared.exceptions.sync import DocumentFetchError

URL = "https://files.test/budget.pdf"


def _response(status_code: int, body: bytes, headers: dict | None = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = body
    resp._content_consumed = True
    resp.headers.update(headers or {})
    return resp


def _fetcher(resp, max_bytes: int = 1024) -> DocumentFetcher:
    session = MagicMock()
    session.request.return_value = resp
    return DocumentFetcher(retry_policy=RetryPolicy(max_attempts=1), max_bytes=max_bytes, session=session)


def test_fetch_returns_body_and_streams() -> None:
    fetcher = _fetcher(_response(200, b"%PDF-1.4 ..."))

    assert fetcher.fetch(URL) == b"%PDF-1.4 ..."
    assert fetcher._session.request.call_args.kwargs["stream"] is True


def test_declared_oversize_is_rejected() -> None:
    fetcher = _fetcher(_response(200, b"%PDF", {"Content-Length": "999999"}))

    with pytest.raises(DocumentFetchError) as exc_info:
        fetcher.fetch(URL)

    assert exc_info.value.url == URL
    assert "demasiado grande" in exc_info.value.reason


def test_actual_oversize_is_rejected() -> None:
    with pytest.raises(DocumentFetchError):
        _fetcher(_response(200, b"x" * 2048)).fetch(URL)


def test_empty_body_is_rejected() -> None:
    with pytest.raises(DocumentFetchError):
        _fetcher(_response(200, b"")).fetch(URL)


def test_http_error_becomes_document_error() -> None:
    with pytest.raises(DocumentFetchError) as exc_info:
        _fetcher(_response(403, b"denied")).fetch(URL)

    assert exc_info.value.reason.startswith(URL)


class _StreamedResponse(requests.Response):
    """Respuesta sin Content-Length cuyo cuerpo llega en chunks."""

    def __init__(self, chunks: list) -> None:
        super().__init__()
        self.status_code = 200
        self._chunks = chunks
        self.served = 0
        self.closed = False

    def iter_content(self, chunk_size=1, decode_unicode=False):
        for chunk in self._chunks:
            if isinstance(chunk, Exception):
                raise chunk
            self.served += 1
            yield chunk

    def close(self) -> None:
        self.closed = True


def test_streamed_oversize_stops_reading() -> None:
    resp = _StreamedResponse([b"x" * 600, b"x" * 600, b"x" * 600, b"x" * 600])

    with pytest.raises(DocumentFetchError) as exc_info:
        _fetcher(resp, max_bytes=1024).fetch(URL)

    assert "demasiado grande" in exc_info.value.reason
    assert resp.served == 2
    assert resp.closed


def test_broken_body_becomes_document_error() -> None:
    resp = _StreamedResponse([b"%PDF", requests.exceptions.ChunkedEncodingError("connection broken mid-body")])

    with pytest.raises(DocumentFetchError) as exc_info:
        _fetcher(resp).fetch(URL)

    assert "ChunkedEncodingError" in exc_info.value.reason
    assert resp.closed


def test_invalid_url_becomes_document_error() -> None:
    session = MagicMock()
    session.request.side_effect = requests.exceptions.InvalidURL("Invalid URL 'http://': No host supplied")
    fetcher = DocumentFetcher(retry_policy=RetryPolicy(max_attempts=3), session=session)

    with pytest.raises(DocumentFetchError) as exc_info:
        fetcher.fetch("http://")

    assert "InvalidURL" in exc_info.value.reason
    assert session.request.call_count == 1


@pytest.mark.asyncio
async def test_run_document_task_passes_args_and_kwargs() -> None:
    def work(a: int, b: int, scale: int = 1) -> int:
        return (a + b) * scale

    assert await run_document_task(work, 2, 3, scale=10) == 50
    assert get_executor_stats()["max_workers"] >= 1
