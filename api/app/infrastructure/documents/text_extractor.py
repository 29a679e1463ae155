"""
Extracción de texto plano desde PDFs de presupuesto (pypdf).

Contrato: extract_text(bytes) -> str. Cualquier PDF corrupto, cifrado
o que no sea PDF levanta ExtractionError con la causa original; nunca
se propaga una excepción de pypdf al llamador.
"""
from io import BytesIO

from loguru import logger
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from app.shared.exceptions.sync import ExtractionError


def looks_like_pdf(data: bytes) -> bool:
    if not data:
        return False
    head = data[:1024].lstrip()
    if head.startswith(b"\xef\xbb\xbf"):
        head = head[3:].lstrip()
    return head.startswith(b"%PDF")


class TextExtractor:
    """Extractor de texto por página; las páginas se unen con salto de línea."""

    def extract(self, data: bytes) -> str:
        if not looks_like_pdf(data):
            raise ExtractionError("el documento no es un PDF")

        try:
            reader = PdfReader(BytesIO(data))
            if reader.is_encrypted:
                # PDFs con contraseña de usuario vacía se pueden leer igual
                if not reader.decrypt(""):
                    raise ExtractionError("PDF protegido con contraseña")

            pages = []
            for page in reader.pages:
                text = page.extract_text() or ""
                pages.append(text.replace("\u202f", " ").replace("\xa0", " "))
        except ExtractionError:
            raise
        except PyPdfError as e:
            raise ExtractionError(f"PDF ilegible: {e}") from e
        except Exception as e:
            # pypdf levanta errores genéricos en PDFs muy rotos
            raise ExtractionError(f"PDF ilegible: {type(e).__name__}: {e}") from e

        logger.debug(f"Texto extraído de PDF: {len(pages)} página(s)")
        return "\n".join(pages)


def extract_text(data: bytes) -> str:
    return TextExtractor().extract(data)
