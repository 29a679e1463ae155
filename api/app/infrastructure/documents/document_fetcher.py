"""
Descarga de documentos de presupuesto por URL.

Usa la misma política de timeout/reintentos que el cliente de Airtable.
El cuerpo se lee en streaming y se corta al superar max_bytes.
Todo fallo se convierte en DocumentFetchError (error por documento).
"""
from typing import Optional

import requests
from loguru import logger

from app.infrastructure.external.http_retry import (
    HttpFatalError,
    RetryPolicy,
    request_with_backoff,
)
from app.shared.exceptions.sync import DocumentFetchError

CHUNK_SIZE = 64 * 1024


class DocumentFetcher:
    """Cliente HTTP de solo lectura para adjuntos (Airtable / storage)."""

    def __init__(
        self,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        max_bytes: int = 25 * 1024 * 1024,
        session: Optional[requests.Session] = None,
    ):
        self._retry_policy = retry_policy or RetryPolicy()
        self._max_bytes = max_bytes
        self._session = session or requests.Session()

    def fetch(self, url: str) -> bytes:
        try:
            resp = request_with_backoff(
                self._session,
                "GET",
                url,
                policy=self._retry_policy,
                headers={"Accept": "application/pdf,*/*"},
                stream=True,
            )
        except HttpFatalError as e:
            raise DocumentFetchError(url, str(e)) from e

        try:
            declared = resp.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > self._max_bytes:
                raise DocumentFetchError(url, f"documento demasiado grande ({declared} bytes)")
            body = self._read_body(resp, url)
        finally:
            resp.close()

        if not body:
            raise DocumentFetchError(url, "respuesta vacía")

        logger.debug(f"Documento descargado: {url} ({len(body)} bytes)")
        return body

    def _read_body(self, resp: requests.Response, url: str) -> bytes:
        chunks = []
        size = 0
        try:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                size += len(chunk)
                if size > self._max_bytes:
                    raise DocumentFetchError(
                        url, f"documento demasiado grande (más de {self._max_bytes} bytes)"
                    )
                chunks.append(chunk)
        except requests.RequestException as e:
            raise DocumentFetchError(url, f"descarga interrumpida: {type(e).__name__}: {e}") from e
        return b"".join(chunks)
