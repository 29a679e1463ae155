"""
Cliente mínimo de Airtable REST API (sin SDKs externos).

Requisitos cubiertos:
- requests
- paginación por offset (listRecords -> página + token)
- secuencia de páginas lazy y re-iniciable desde cualquier token
- getRecord por record id (404 -> AirtableRecordNotFound)
- rate-limit/backoff (429, 5xx) acotado, ver http_retry
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional
from urllib.parse import quote

import requests

from app.shared.constants.sync_constants import TableKind

from ..http_retry import (
    HttpFatalError,
    HttpNotFoundError,
    RetryPolicy,
    request_with_backoff,
)
from .types import AirtableRecord, RecordPage, parse_iso_datetime


@dataclass(frozen=True)
class AirtableCredentials:
    token: str
    base_id: str


class AirtableApiError(RuntimeError):
    """Error de integración con Airtable (no recuperable para la corrida)."""


class AirtableRecordNotFound(AirtableApiError):
    """El record id no existe en la tabla."""


class AirtableClient:
    """
    Cliente HTTP de Airtable, de solo lectura.

    Importante:
    - No hace cast de tipos de campos: eso se decide en el mapeo de Postgres.
    - last_modified se toma del campo configurado (ISO8601); si falta,
      se usa createdTime del registro (Airtable siempre lo envía).
    """

    def __init__(
        self,
        credentials: AirtableCredentials,
        *,
        table_names: dict[TableKind, str],
        last_modified_field: str = "Last Modified",
        session: Optional[requests.Session] = None,
        base_url: str = "https://api.airtable.com/v0",
        retry_policy: Optional[RetryPolicy] = None,
        page_size: int = 100,
    ) -> None:
        self._creds = credentials
        self._table_names = dict(table_names)
        self._last_modified_field = last_modified_field
        self._base_url = base_url.rstrip("/")
        self._retry_policy = retry_policy or RetryPolicy()
        self._page_size = page_size
        self._session = session or requests.Session()

    @property
    def last_modified_field(self) -> str:
        return self._last_modified_field

    def _table_url(self, table_kind: TableKind) -> str:
        table_name = self._table_names.get(table_kind)
        if not table_name:
            raise AirtableApiError(f"No hay tabla Airtable configurada para '{table_kind.value}'")
        return f"{self._base_url}/{self._creds.base_id}/{quote(table_name, safe='')}"

    def list_records(
        self,
        table_kind: TableKind,
        *,
        view: Optional[str] = None,
        filter_formula: Optional[str] = None,
        page_token: Optional[str] = None,
    ) -> RecordPage:
        """
        Trae una página de registros.

        Retorna la página y el token de la siguiente (None si es la última).
        """
        query: list[tuple[str, Any]] = [("pageSize", self._page_size)]
        if view:
            query.append(("view", view))
        if filter_formula:
            query.append(("filterByFormula", filter_formula))
        if page_token:
            query.append(("offset", page_token))

        payload = self._request_json("GET", self._table_url(table_kind), query=query)
        records = [
            self._to_record(table_kind, raw) for raw in payload.get("records") or []
        ]
        return RecordPage(records=records, next_page_token=payload.get("offset") or None)

    def iter_pages(
        self,
        table_kind: TableKind,
        *,
        view: Optional[str] = None,
        filter_formula: Optional[str] = None,
        start_token: Optional[str] = None,
    ) -> Iterator[RecordPage]:
        """
        Secuencia lazy de páginas.

        Se puede reanudar pasando como start_token el next_page_token de la
        última página consumida.
        """
        token = start_token
        while True:
            page = self.list_records(
                table_kind, view=view, filter_formula=filter_formula, page_token=token
            )
            yield page
            if not page.next_page_token:
                break
            token = page.next_page_token

    def get_record(self, table_kind: TableKind, record_id: str) -> AirtableRecord:
        url = f"{self._table_url(table_kind)}/{quote(record_id, safe='')}"
        try:
            payload = self._request_json("GET", url, query=[])
        except AirtableRecordNotFound:
            raise AirtableRecordNotFound(
                f"Record {record_id} no existe en '{table_kind.value}'"
            ) from None
        return self._to_record(table_kind, payload)

    def _to_record(self, table_kind: TableKind, raw: dict[str, Any]) -> AirtableRecord:
        rec_id = raw.get("id")
        rec_fields = raw.get("fields") or {}

        if not rec_id:
            # Caso raro; preferimos fallar temprano y visible.
            raise AirtableApiError("Airtable devolvió un record sin 'id'")

        last_modified = parse_iso_datetime(rec_fields.get(self._last_modified_field))
        if last_modified is None:
            last_modified = parse_iso_datetime(raw.get("createdTime"))
        if last_modified is None:
            raise AirtableApiError(
                f"El record {rec_id} no contiene '{self._last_modified_field}' ni createdTime"
            )

        return AirtableRecord(
            record_id=rec_id,
            table_kind=table_kind,
            fields=rec_fields,
            last_modified=last_modified,
        )

    def _request_json(
        self, method: str, url: str, *, query: list[tuple[str, Any]]
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._creds.token}",
            "Content-Type": "application/json",
        }
        try:
            resp = request_with_backoff(
                self._session,
                method,
                url,
                policy=self._retry_policy,
                params=query,
                headers=headers,
            )
        except HttpNotFoundError as e:
            raise AirtableRecordNotFound(str(e)) from e
        except HttpFatalError as e:
            raise AirtableApiError(f"Airtable request falló: {e}") from e
        return resp.json()
