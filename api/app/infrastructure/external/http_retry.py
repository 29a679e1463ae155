"""
Requests HTTP con timeout y reintentos acotados.

Compartido por el cliente de Airtable y por la descarga de documentos:
ninguna llamada externa bloquea indefinidamente ni reintenta sin límite.

Estrategia:
- 429: respeta Retry-After si existe, si no exponencial con jitter simple.
- 5xx / errores de red / timeouts / cuerpo cortado: exponencial con jitter.
- 404: HttpNotFoundError inmediato.
- 4xx (no 429): HttpFatalError inmediato (config/auth mal).
- Otros errores de requests (URL inválida, redirecciones): HttpFatalError inmediato.
- Agotar los intentos convierte el error recuperable en HttpFatalError.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests
from loguru import logger


class HttpTransientError(RuntimeError):
    """Error recuperable (red, timeout, 5xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class HttpRateLimitedError(HttpTransientError):
    """429 Too Many Requests."""


class HttpFatalError(RuntimeError):
    """Error no recuperable o presupuesto de reintentos agotado."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class HttpNotFoundError(HttpFatalError):
    """404."""


@dataclass(frozen=True)
class RetryPolicy:
    """
    Política de reintentos.

    max_attempts cuenta intentos totales (no reintentos).
    """

    max_attempts: int = 3
    min_backoff_s: float = 0.5
    max_backoff_s: float = 4.0
    timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.HTTP_MAX_ATTEMPTS),
            min_backoff_s=settings.HTTP_MIN_BACKOFF_S,
            max_backoff_s=settings.HTTP_MAX_BACKOFF_S,
            timeout_s=settings.HTTP_TIMEOUT_S,
        )

    def backoff_for(self, attempt: int) -> float:
        # Exponencial simple + jitter proporcional, acotado por max_backoff_s
        base = min(self.max_backoff_s, self.min_backoff_s * (2**attempt))
        return min(self.max_backoff_s, base + (0.15 * base))


def _retry_after_seconds(resp: requests.Response, policy: RetryPolicy, attempt: int) -> float:
    retry_after = resp.headers.get("Retry-After")
    if retry_after:
        try:
            return min(policy.max_backoff_s, float(retry_after))
        except ValueError:
            pass
    return policy.backoff_for(attempt)


_TRANSIENT_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def request_with_backoff(
    session: requests.Session,
    method: str,
    url: str,
    *,
    policy: RetryPolicy,
    params: Any = None,
    headers: Optional[dict[str, str]] = None,
    stream: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    Ejecuta la request y retorna la respuesta 2xx.

    Raises:
        HttpNotFoundError: 404
        HttpFatalError: 4xx o error de requests no recuperable, o reintentos agotados
    """
    last_error: Optional[HttpTransientError] = None

    for attempt in range(policy.max_attempts):
        try:
            resp = session.request(
                method=method,
                url=url,
                params=params,
                headers=headers,
                timeout=policy.timeout_s,
                stream=stream,
            )
        except _TRANSIENT_ERRORS as e:
            last_error = HttpTransientError(f"{type(e).__name__}: {e}")
            wait_s = policy.backoff_for(attempt)
        except requests.RequestException as e:
            raise HttpFatalError(f"{method} {url}: {type(e).__name__}: {e}") from e
        else:
            if 200 <= resp.status_code < 300:
                return resp

            if resp.status_code == 404:
                raise HttpNotFoundError(f"{method} {url} -> 404", status_code=404)

            if resp.status_code == 429:
                last_error = HttpRateLimitedError(
                    f"{method} {url} -> 429: {resp.text[:500]}", status_code=429
                )
                wait_s = _retry_after_seconds(resp, policy, attempt)
            elif 500 <= resp.status_code < 600:
                last_error = HttpTransientError(
                    f"{method} {url} -> {resp.status_code}: {resp.text[:500]}",
                    status_code=resp.status_code,
                )
                wait_s = policy.backoff_for(attempt)
            else:
                raise HttpFatalError(
                    f"{method} {url} falló {resp.status_code}: {resp.text[:500]}",
                    status_code=resp.status_code,
                )

        if attempt + 1 >= policy.max_attempts:
            break

        logger.debug(
            f"Reintento {attempt + 1}/{policy.max_attempts - 1} en {wait_s:.2f}s: {last_error}"
        )
        sleep(wait_s)

    raise HttpFatalError(
        f"Reintentos agotados ({policy.max_attempts} intentos): {last_error}",
        status_code=last_error.status_code if last_error else None,
    ) from last_error
