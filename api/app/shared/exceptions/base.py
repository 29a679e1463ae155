"""
Excepción base de la aplicación y su representación JSON.
"""
from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Excepción base de la aplicación.

    El handler global la traduce a `{error, message, details}` con su
    status_code.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }
