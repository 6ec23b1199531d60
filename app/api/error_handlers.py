"""Global exception handlers rendering every failure as ``{code, message, details?}``.

- StoreError -> translated by map_database_error
- ZtmServiceError -> upstream code with its own 502/504 status
- ApiError -> raised directly by the HTTP layer
- RequestValidationError -> 400 with field-level details
- Exception (catch-all) -> 500, never leaks internal details
"""

from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import ApiError, ErrorCode, StoreError, ZtmServiceError
from app.helpers.db_errors import map_database_error
from app.models.stop_set import SET_NAME_MAX_LENGTH

logger = structlog.get_logger(__name__)

# Body fields whose validation failures get a dedicated error code
_FIELD_ERROR_CODES: dict[str, ErrorCode] = {
    "name": ErrorCode.INVALID_SET_NAME,
    "stop_id": ErrorCode.INVALID_STOP_ID,
}


def error_body(code: ErrorCode | str, message: str, details: Any = None) -> dict[str, Any]:  # noqa: ANN401
    """Build the JSON error payload."""
    body: dict[str, Any] = {"code": code.value if isinstance(code, ErrorCode) else code, "message": message}
    if details is not None:
        body["details"] = details
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_store_error_handler(app)
    _register_upstream_error_handler(app)
    _register_api_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_store_error_handler(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        mapped = map_database_error(exc)
        logger.info(
            "store_error",
            path=request.url.path,
            kind=exc.kind.value,
            code=mapped.code.value,
            status_code=mapped.status,
        )
        return JSONResponse(status_code=mapped.status, content=error_body(mapped.code, mapped.message))


def _register_upstream_error_handler(app: FastAPI) -> None:
    @app.exception_handler(ZtmServiceError)
    async def upstream_error_handler(request: Request, exc: ZtmServiceError) -> JSONResponse:
        logger.warning(
            "upstream_error",
            path=request.url.path,
            code=exc.code.value,
            status_code=exc.http_status,
            cause=repr(exc.__cause__) if exc.__cause__ else None,
        )
        return JSONResponse(status_code=exc.http_status, content=error_body(exc.code, exc.message))


def _register_api_error_handler(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message, exc.details),
        )


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        code = _validation_error_code(errors)
        logger.info("request_validation_failed", path=request.url.path, code=code.value, error_count=len(errors))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(code, _validation_message(code), _validation_details(errors)),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred"),
        )


def _validation_error_code(errors: Any) -> ErrorCode:  # noqa: ANN401
    """Pick the error code from the first failing body field."""
    for error in errors:
        loc = error.get("loc", ())
        if len(loc) >= 2 and loc[0] == "body" and loc[1] in _FIELD_ERROR_CODES:
            return _FIELD_ERROR_CODES[loc[1]]
    return ErrorCode.INVALID_INPUT


def _validation_message(code: ErrorCode) -> str:
    if code is ErrorCode.INVALID_SET_NAME:
        return f"Set name must be between 1 and {SET_NAME_MAX_LENGTH} characters after trimming"
    if code is ErrorCode.INVALID_STOP_ID:
        return "stop_id must be a positive integer"
    return "Invalid request data"


def _validation_details(errors: Any) -> list[dict[str, str]]:  # noqa: ANN401
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in errors
    ]
