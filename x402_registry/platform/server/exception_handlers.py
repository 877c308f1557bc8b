"""Render registry errors as JSON bodies with ``error`` and ``category``."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from x402_registry.registry.errors import RegistryError, ValidationError

logger = logging.getLogger(__name__)


async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()]
    error = ValidationError("Invalid request body", fields=[field for field in fields if field])
    return JSONResponse(error.to_dict(), status_code=error.status_code)


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistryError, registry_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
