"""
Índice de presupuesto por categoría (categoría -> importe).

El índice se deriva del texto de los PDFs de presupuesto y se guarda en la
entidad como JSON {categoria: "importe decimal"}. Los importes se serializan
como string para no perder precisión.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class CategoryKey(str, Enum):
    """Categorías de reforma reconocidas en los presupuestos."""
    DEMOLITION = "demolition"
    MASONRY = "masonry"
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    HVAC = "hvac"
    CARPENTRY = "carpentry"
    WINDOWS = "windows"
    FLOORING = "flooring"
    PAINTING = "painting"
    KITCHEN = "kitchen"
    BATHROOM = "bathroom"
    FURNITURE = "furniture"
    CLEANING = "cleaning"
    WASTE = "waste"
    MATERIALS = "materials"
    LABOR = "labor"


CategoryIndex = Dict[CategoryKey, Decimal]

_CATEGORY_ORDER = {key: position for position, key in enumerate(CategoryKey)}


def ordered_index(index: Mapping[CategoryKey, Decimal]) -> CategoryIndex:
    """Devuelve el índice ordenado según la declaración de CategoryKey."""
    return {key: index[key] for key in sorted(index, key=_CATEGORY_ORDER.__getitem__)}


def merge_indices(indices: list[CategoryIndex]) -> CategoryIndex:
    """
    Unión de categorías de varios documentos.

    Ante conflicto (misma categoría en dos documentos) gana el documento que
    aparece más tarde en la lista.
    """
    merged: CategoryIndex = {}
    for index in indices:
        merged.update(index)
    return ordered_index(merged)


def index_to_json(index: Mapping[CategoryKey, Decimal]) -> Dict[str, str]:
    return {key.value: format(amount, "f") for key, amount in ordered_index(index).items()}


def index_from_json(raw: Optional[Mapping[str, Any]]) -> Optional[CategoryIndex]:
    """Reconstruye el índice desde la columna JSON. Claves desconocidas se ignoran."""
    if raw is None:
        return None
    index: CategoryIndex = {}
    for key, value in raw.items():
        try:
            index[CategoryKey(key)] = Decimal(str(value))
        except (ValueError, InvalidOperation):
            continue
    return ordered_index(index)
