"""
Verificación de secreto compartido en header Authorization: Bearer <token>.

Se usa para el webhook de Airtable (AIRTABLE_WEBHOOK_SECRET) y para los
triggers de sync/cron (CRON_SECRET).

IMPORTANTE:
- Secreto vacío = verificación desactivada (todo request pasa).
- No emite tokens: solo compara.
"""

from __future__ import annotations

import hmac
from typing import Optional


class BearerTokenVerifier:
    """
    Verifica el header Authorization contra un secreto esperado.

    Usa comparación en tiempo constante (hmac.compare_digest) para reducir leaks
    por timing.
    """

    def __init__(self, expected_token: str) -> None:
        self._expected_token = expected_token or ""

    def is_configured(self) -> bool:
        return bool(self._expected_token)

    @staticmethod
    def extract_token(authorization: Optional[str]) -> str:
        if not authorization:
            return ""
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != "bearer":
            return ""
        return token.strip()

    def verify(self, authorization: Optional[str]) -> bool:
        if not self.is_configured():
            return True

        token = self.extract_token(authorization)
        # compare_digest solo acepta str ASCII; se comparan bytes UTF-8
        return hmac.compare_digest(token.encode("utf-8"), self._expected_token.encode("utf-8"))
