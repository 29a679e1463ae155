"""
Middleware que convierte excepciones no manejadas en un 500 JSON.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.shared.exceptions.base import AppException


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Ultima red para errores que no son AppException."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            # escapar llaves: loguru interpreta {} en el mensaje
            error_msg = str(exc).replace("{", "{{").replace("}", "}}")
            logger.opt(exception=exc).error(
                f"Error no manejado en {request.method} {request.url.path}: {error_msg}"
            )
            body = AppException(
                "Ha ocurrido un error interno del servidor",
                error_code="INTERNAL_SERVER_ERROR",
            ).to_dict()
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
