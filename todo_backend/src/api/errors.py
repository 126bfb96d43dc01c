from __future__ import annotations

from typing import Any, List, Optional, TypeVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging_config import get_logger
from .results import Err, ErrorKind, Result, ServiceError

logger = get_logger(__name__)

T = TypeVar("T")


class ApiError(Exception):
    """Carries a ServiceError from a route or dependency to the exception handler."""

    def __init__(self, error: ServiceError) -> None:
        super().__init__(error.message)
        self.error = error


# PUBLIC_INTERFACE
def unwrap(result: Result[T]) -> T:
    """
    Return the value of an Ok result; turn an Err into an ApiError.

    This is the single place where service outcomes become transport errors.
    """
    if isinstance(result, Err):
        raise ApiError(result.error)
    return result.value


def error_body(status_code: int, label: str, message: str, attributes: Optional[List[Any]] = None) -> dict:
    body = {"statusCode": status_code, "error": label, "message": message}
    if attributes is not None:
        body["attributes"] = attributes
    return body


def _error_response(error: ServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if error.kind == ErrorKind.AUTHENTICATION else None
    return JSONResponse(
        status_code=error.kind.status_code,
        content=error_body(error.kind.status_code, error.kind.label, error.message),
        headers=headers,
    )


# PUBLIC_INTERFACE
def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register the handlers that produce every error response.

    Response format:
        {
            "statusCode": 400,
            "error": "Bad Request",
            "message": "Request validation failed",
            "attributes": [... field errors, validation failures only ...]
        }
    """

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        if exc.error.kind == ErrorKind.INTERNAL:
            logger.error("request_failed", path=request.url.path, reason=exc.error.reason)
        return _error_response(exc.error)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body(400, "Bad Request", "Request validation failed", details),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", path=request.url.path, method=request.method)
        return JSONResponse(
            status_code=500,
            content=error_body(500, "Internal Server Error", "Internal Server Error"),
        )
