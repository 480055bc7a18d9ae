"""
Gestionnaires d'exceptions.
- ServiceError (et sous-classes): JSON {"error": {code, message, hint, details}} avec le statut HTTP associé
- HTTPException (auth): JSON FastAPI standard {"detail": ...}
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from internhub.errors import ServiceError

logger = logging.getLogger(__name__)


def error_payload(exc: ServiceError) -> dict:
    return {"error": exc.to_dict()}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.http_status >= 500:
            logger.error("%s %s -> %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s -> %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=exc.http_status, content=error_payload(exc))

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
