"""Error taxonomy and the FastAPI handlers that render it."""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from logging_config import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, **self.extra}


class ValidationFailed(StoreError):
    """Malformed input. Carries either a single message or a list of field errors."""

    status_code = 400

    def __init__(self, message: str = "", errors: Optional[list] = None, **extra: Any):
        super().__init__(message, **extra)
        self.errors = errors or []

    def to_dict(self) -> dict:
        if self.errors:
            return {"success": False, "errors": [e.to_dict() for e in self.errors]}
        return super().to_dict()


class BusinessRuleViolation(StoreError):
    status_code = 400


class Unauthorized(StoreError):
    status_code = 401


class Forbidden(StoreError):
    status_code = 403


class NotFound(StoreError):
    status_code = 404


def handle_route_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", path=request.url.path, method=request.method, exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=jsonable_encoder({"success": False, "errors": errors}))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return handle_route_error(request, exc)
