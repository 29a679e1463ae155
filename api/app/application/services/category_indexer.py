"""
Indexador de presupuestos: texto de PDF -> {categoría: importe}.

Heurística por líneas:
1. Se quita la numeración inicial ("3 PINTURA", "2.1- Fontanería").
2. La línea se compara contra una tabla ordenada de reglas de palabras
   clave (sin mayúsculas ni acentos); la primera regla que encaja gana.
3. Si la línea tiene además un importe, se toma el último importe de la
   línea (las columnas de total van a la derecha).
4. Si una categoría aparece en varias líneas gana la última: en los
   presupuestos los subtotales y revisiones van después del detalle.

Formatos de importe soportados: "1.234,56", "1,234.56", "1234.56",
"1234,5", "350"; el símbolo € es opcional. Porcentajes y fechas se ignoran.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from app.domain.entities.budget import CategoryIndex, CategoryKey, ordered_index


@dataclass(frozen=True)
class CategoryRule:
    """Regla de la tabla: categoría + palabras clave ya normalizadas."""
    category: CategoryKey
    keywords: Tuple[str, ...]

    def compile(self) -> "re.Pattern[str]":
        alternatives = "|".join(self.keywords)
        return re.compile(rf"\b(?:{alternatives})\b")


# El orden importa: reglas más específicas primero
# ("carpinteria exterior" es ventanas antes que carpintería).
DEFAULT_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(CategoryKey.DEMOLITION, (r"demolicion(?:es)?", r"derribos?", r"demolition")),
    CategoryRule(CategoryKey.WASTE, (
        r"residuos", r"escombros?", r"contenedor(?:es)?", r"waste", r"debris",
    )),
    CategoryRule(CategoryKey.WINDOWS, (
        r"ventanas?", r"carpinteria exterior", r"carpinteria de aluminio",
        r"cristaleria", r"windows?",
    )),
    CategoryRule(CategoryKey.CARPENTRY, (r"carpinteria(?: interior)?", r"puertas?", r"carpentry")),
    CategoryRule(CategoryKey.PLUMBING, (r"fontaneria", r"fontanero", r"saneamiento", r"plumbing")),
    CategoryRule(CategoryKey.ELECTRICAL, (
        r"electricidad", r"instalacion electrica", r"electricas?", r"electrical", r"electricity",
    )),
    CategoryRule(CategoryKey.HVAC, (
        r"climatizacion", r"calefaccion", r"aire acondicionado", r"hvac", r"heating",
    )),
    CategoryRule(CategoryKey.MASONRY, (r"albanileria", r"tabiqueria", r"masonry", r"brickwork")),
    CategoryRule(CategoryKey.FLOORING, (
        r"solados?", r"pavimentos?", r"suelos?", r"alicatados?", r"flooring", r"tiling",
    )),
    CategoryRule(CategoryKey.PAINTING, (r"pinturas?", r"painting")),
    CategoryRule(CategoryKey.KITCHEN, (r"cocinas?", r"kitchen")),
    CategoryRule(CategoryKey.BATHROOM, (r"banos?", r"sanitarios", r"bathrooms?")),
    CategoryRule(CategoryKey.FURNITURE, (
        r"mobiliario", r"muebles", r"amueblamiento", r"furniture", r"furnishing",
    )),
    CategoryRule(CategoryKey.CLEANING, (r"limpieza", r"cleaning")),
    CategoryRule(CategoryKey.MATERIALS, (r"materiales", r"materials")),
    CategoryRule(CategoryKey.LABOR, (r"mano de obra", r"labou?r")),
)

_ENUMERATION_PREFIX = re.compile(r"^\s*\d{1,2}(?:\.\d{1,2})*[.)\-—]?\s+")

_GROUP_SPACES = re.compile(r"[ \u00a0\u202f]")

_AMOUNT = re.compile(
    r"(?<![\w.,/-])"
    r"(\d{1,3}(?:[ \u00a0\u202f]\d{3})+(?:[.,]\d{1,2})?"
    r"|\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?"
    r"|\d+(?:[.,]\d{1,2})?)"
    r"(?![\w/%]|[.,]\d|-\d)(?!\s*%)"
)


def fold_text(value: str) -> str:
    """Minúsculas y sin acentos ("FONTANERÍA" -> "fontaneria")."""
    decomposed = unicodedata.normalize("NFD", value.lower())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def strip_enumeration(line: str) -> str:
    return _ENUMERATION_PREFIX.sub("", line, count=1)


def parse_amount(token: str) -> Optional[Decimal]:
    """
    Convierte un importe con separadores locales a Decimal.

    - Con '.' y ',' el separador que aparece último es el decimal.
    - Con un solo tipo de separador: si se repite o deja exactamente
      3 dígitos detrás, es de miles; si no, es decimal.
    - Los espacios (también no separables) agrupan miles: "1 234,56".
    """
    token = _GROUP_SPACES.sub("", token)
    if not token:
        return None

    has_comma = "," in token
    has_dot = "." in token
    if has_comma and has_dot:
        decimal_sep = "," if token.rfind(",") > token.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        normalized = token.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif has_comma or has_dot:
        sep = "," if has_comma else "."
        tail = token.rsplit(sep, 1)[1]
        if token.count(sep) > 1 or len(tail) == 3:
            normalized = token.replace(sep, "")
        else:
            normalized = token.replace(sep, ".")
    else:
        normalized = token

    try:
        amount = Decimal(normalized)
    except InvalidOperation:
        return None
    return amount if amount >= 0 else None


class CategoryIndexer:
    """
    Construye el índice categoría -> importe a partir del texto de un PDF.

    Uso:
        indexer = CategoryIndexer()
        index = indexer.build_index(pdf_text)
    """

    def __init__(self, rules: Sequence[CategoryRule] = DEFAULT_RULES):
        self._rules: List[Tuple[CategoryKey, "re.Pattern[str]"]] = [
            (rule.category, rule.compile()) for rule in rules
        ]

    def match_category(self, line: str) -> Optional[CategoryKey]:
        folded = fold_text(line)
        for category, pattern in self._rules:
            if pattern.search(folded):
                return category
        return None

    @staticmethod
    def last_amount(line: str) -> Optional[Decimal]:
        amount = None
        for match in _AMOUNT.finditer(line):
            parsed = parse_amount(match.group(1))
            if parsed is not None:
                amount = parsed
        return amount

    def build_index(self, text: str) -> CategoryIndex:
        """
        Un texto sin coincidencias produce un índice vacío (no es error).
        """
        index: CategoryIndex = {}
        for raw_line in (text or "").splitlines():
            line = strip_enumeration(raw_line)
            if not line.strip():
                continue
            category = self.match_category(line)
            if category is None:
                continue
            amount = self.last_amount(line)
            if amount is None:
                continue
            index[category] = amount

        logger.debug(f"Índice de presupuesto: {len(index)} categoría(s)")
        return ordered_index(index)


def build_index(text: str) -> CategoryIndex:
    return CategoryIndexer().build_index(text)
