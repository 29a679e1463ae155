"""
Mapeos Airtable -> tablas locales, por tipo de tabla.

Este es el punto para tener control total sobre:
- qué columnas existen localmente
- qué nombres de field acepta cada columna (alias históricos, en orden de prioridad)
- cómo se transforman los valores de Airtable

Las transformaciones levantan ValueError/TypeError cuando el valor tiene una
forma inválida; el mapper lo convierte en MappingError para ese registro.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

from app.infrastructure.database.models import ProjectModel, PropertyModel
from app.shared.constants.sync_constants import TableKind

from .sync_config import TableSyncConfig
from .types import FieldMapping


# Set Up Status / Project status (Airtable) -> fase interna
PROJECT_STATUS_PHASES: dict[str, str] = {
    "Get Project Draft": "analisis-supply",
    "Pending to reserve (arras)": "analisis-supply",
    "Pending to validate": "analisis-reno",
    "Technical project in progress": "administracion-reno",
    "Ecu first validation": "administracion-reno",
    "Technical project fine-tuning": "administracion-reno",
    "Ecu final validation": "administracion-reno",
    "Pending to budget from renovator": "pendiente-presupuestos-renovador",
    "Pending to start reno": "obra-a-empezar",
    "Reno in progress": "obra-en-progreso",
    "Furnishing": "amueblamiento",
    "Final check": "check-final",
}

PROPERTY_STATUS_PHASES: dict[str, str] = {
    "Pending to visit": "upcoming-settlements",
    "Upcoming Settlements": "upcoming-settlements",
    "Initial Check": "initial-check",
    "Pending to budget (from Renovator)": "reno-budget-renovator",
    "Pending to budget (from Client)": "reno-budget-client",
    "Reno to start": "reno-budget-start",
    "Pending to validate budget": "reno-budget",
    "Reno in progress": "reno-in-progress",
    "Furnishing": "furnishing",
    "Final Check": "final-check",
    "Cleaning": "cleaning",
    "Cleaning & Furnishing": "furnishing-cleaning",
    "Reno Fixes": "reno-fixes",
    "Done": "done",
}

BUDGET_URLS_FIELD = "TECH - Budget Attachment (URLs)"


def _fold(value: str) -> str:
    """minúsculas, sin acentos y con espacios colapsados."""
    collapsed = re.sub(r"\s+", " ", value.strip().lower())
    decomposed = unicodedata.normalize("NFD", collapsed)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", _fold(value)).strip("-")


def _first_scalar(value: Any) -> Any:
    # Los lookups de Airtable llegan como listas
    if isinstance(value, (list, tuple)):
        for item in value:
            if item is not None and item != "":
                return item
        return None
    return value


def to_text(value: Any) -> Optional[str]:
    value = _first_scalar(value)
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise TypeError(f"se esperaba texto, llegó {type(value).__name__}")
    text = str(value).strip()
    return text or None


def to_date(value: Any) -> Optional[date]:
    value = _first_scalar(value)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise TypeError(f"se esperaba fecha ISO, llegó {type(value).__name__}")
    raw = value.strip()
    try:
        if len(raw) == 10:
            return date.fromisoformat(raw)
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValueError(f"fecha inválida '{raw}'") from None


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convierte números de Airtable a Decimal.

    Acepta números nativos y strings con coma decimal ("1234,5") o con
    separador de miles ("1.234,56" / "1,234.56"); el símbolo € es opcional.
    """
    value = _first_scalar(value)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise TypeError("se esperaba un número, llegó bool")
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if not isinstance(value, str):
        raise TypeError(f"se esperaba un número, llegó {type(value).__name__}")

    raw = value.replace("€", "").replace("EUR", "").replace(" ", "").strip()
    if "," in raw and "." in raw:
        decimal_sep = "," if raw.rfind(",") > raw.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        raw = raw.replace(thousands_sep, "").replace(decimal_sep, ".")
    else:
        raw = raw.replace(",", ".")
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"número inválido '{value}'") from None


def status_normalizer(phases: Mapping[str, str]) -> Callable[[Any], Optional[str]]:
    """
    Construye el transform de estado -> fase interna.

    Orden de búsqueda: exacta, normalizada (sin acentos/espacios/mayúsculas),
    y por contención de la clave más larga ("Reno in progress (delayed)").
    Valores desconocidos se guardan como slug.
    """
    folded = {_fold(k): v for k, v in phases.items()}
    by_length = sorted(folded.items(), key=lambda item: len(item[0]), reverse=True)

    def normalize(value: Any) -> Optional[str]:
        raw = to_text(value)
        if raw is None:
            return None
        if raw in phases:
            return phases[raw]
        norm = _fold(raw)
        if norm in folded:
            return folded[norm]
        for key, phase in by_length:
            if key in norm:
                return phase
        return _slugify(raw) or None

    return normalize


def to_url_list(value: Any) -> list[str]:
    """
    URLs de documentos desde string separado por comas, lista de strings
    o lista de adjuntos Airtable ({url, filename, ...}).

    Solo http(s); sin duplicados, conservando el orden.
    """
    if value is None or value == "":
        return []

    candidates: list[str] = []
    if isinstance(value, str):
        candidates = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple)):
        for item in value:
            if isinstance(item, str):
                candidates.extend(part.strip() for part in item.split(","))
            elif isinstance(item, dict) and isinstance(item.get("url"), str):
                candidates.append(item["url"].strip())
    elif isinstance(value, dict) and isinstance(value.get("url"), str):
        candidates = [value["url"].strip()]
    else:
        raise TypeError(f"campo de documentos con forma inválida: {type(value).__name__}")

    urls: list[str] = []
    for url in candidates:
        if url.startswith(("http://", "https://")) and url not in urls:
            urls.append(url)
    return urls


def to_record_ids(value: Any) -> list[str]:
    """IDs de registros enlazados (lista de 'rec...' o string separado por comas)."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise TypeError(f"se esperaba lista de record ids, llegó {type(value).__name__}")

    ids: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise TypeError(f"record id inválido: {item!r}")
        item = item.strip()
        if item and item not in ids:
            ids.append(item)
    return ids


PROJECT_FIELD_MAPPINGS: list[FieldMapping] = [
    FieldMapping(("Project Name", "Name"), "name", to_text, required=True),
    FieldMapping(
        ("Project status", "Set Up Status", "Set up status"),
        "status",
        status_normalizer(PROJECT_STATUS_PHASES),
    ),
    FieldMapping(("Investment type",), "investment_type", to_text),
    FieldMapping(("Area cluster", "Area Cluster"), "area_cluster", to_text),
    FieldMapping(("Renovator",), "renovator", to_text),
    FieldMapping(("Project address",), "project_address", to_text),
    FieldMapping(("Project start date",), "project_start_date", to_date),
    FieldMapping(("Settlement date", "Estimated settlement date"), "settlement_date", to_date),
    FieldMapping(("Renovation spend",), "renovation_spend", to_decimal),
]

PROPERTY_FIELD_MAPPINGS: list[FieldMapping] = [
    FieldMapping(("Address", "Property Address", "Property address"), "address", to_text, required=True),
    FieldMapping(
        (
            "UNIQUEID (from Engagements)",
            "Unique ID (From Engagements)",
            "Unique ID From Engagements",
            "Unique ID",
        ),
        "unique_id",
        to_text,
    ),
    FieldMapping(("Type",), "property_type", to_text),
    FieldMapping(
        ("Set Up Status", "Set up status"),
        "status",
        status_normalizer(PROPERTY_STATUS_PHASES),
    ),
    FieldMapping(("Required reno", "Renovation type"), "renovation_type", to_text),
    FieldMapping(("Area Cluster", "Area cluster"), "area_cluster", to_text),
    FieldMapping(("Est. visit date", "Estimated Visit Date"), "estimated_visit_date", to_date),
    FieldMapping(("Reno Start Date", "Reno start date"), "reno_start_date", to_date),
    FieldMapping(("Est. Reno End Date", "Est. reno end date"), "estimated_end_date", to_date),
    FieldMapping(("Budget amount", "Reno budget"), "budget_amount", to_decimal),
    FieldMapping((BUDGET_URLS_FIELD, "Budget PDF", "Budget PDF URL"), "budget_pdf_urls", to_url_list),
    FieldMapping(
        ("Project", "Projects", "Parent Project"),
        "project_external_refs",
        to_record_ids,
    ),
]


def get_table_sync_configs(
    *,
    projects_table: str = "Projects",
    projects_view: Optional[str] = None,
    properties_table: str = "Transactions",
    properties_view: Optional[str] = None,
) -> dict[TableKind, TableSyncConfig]:
    """Retorna la configuración de sync para cada tipo de tabla."""
    return {
        TableKind.PROJECTS: TableSyncConfig(
            kind=TableKind.PROJECTS,
            airtable_table_name=projects_table,
            airtable_view=projects_view or None,
            model=ProjectModel,
            field_mappings=PROJECT_FIELD_MAPPINGS,
        ),
        TableKind.PROPERTIES: TableSyncConfig(
            kind=TableKind.PROPERTIES,
            airtable_table_name=properties_table,
            airtable_view=properties_view or None,
            model=PropertyModel,
            field_mappings=PROPERTY_FIELD_MAPPINGS,
            budget_urls_column="budget_pdf_urls",
            parent_refs_column="project_external_refs",
        ),
    }


def table_configs_from_settings(settings) -> dict[TableKind, TableSyncConfig]:
    return get_table_sync_configs(
        projects_table=settings.AIRTABLE_PROJECTS_TABLE,
        projects_view=settings.AIRTABLE_PROJECTS_VIEW,
        properties_table=settings.AIRTABLE_PROPERTIES_TABLE,
        properties_view=settings.AIRTABLE_PROPERTIES_VIEW,
    )
