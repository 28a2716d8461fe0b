"""Lifecycle error mapping and global exception handlers."""
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from classifieds.application.use_cases.listing_lifecycle import LifecycleResult
from classifieds.domain.entities.listing import Listing
from classifieds.domain.errors import (
    ConflictError,
    FatalError,
    InvalidStateError,
    ListingError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    TransientStoreError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# Order matters: subclasses before their bases.
_STATUS_CODES: list[tuple[type[ListingError], int]] = [
    (ValidationError, 400),
    (QuotaExceededError, 403),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidStateError, 409),
]

# Only validation and quota errors carry their own message to the client.
_GENERIC_DETAIL: dict[type[ListingError], str] = {
    PermissionDeniedError: "You are not allowed to perform this action.",
    NotFoundError: "Listing not found.",
    ConflictError: "Listing was modified concurrently, please retry.",
    InvalidStateError: "Listing cannot be changed in its current state.",
}


def error_to_http(error: ListingError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(error, error_type):
            detail = _GENERIC_DETAIL.get(error_type, error.message)
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=500, detail="Internal server error")


def unwrap(result: LifecycleResult) -> Listing:
    """Return the listing of a successful result or raise the mapped HTTP error."""
    if result.error is not None:
        raise error_to_http(result.error)
    if result.listing is None:
        raise HTTPException(status_code=500, detail="Internal server error")
    return result.listing


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(TransientStoreError)
    async def store_exception_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
        logger.error("store_unavailable", path=request.url.path, method=request.method, error=str(exc))
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(FatalError)
    async def fatal_exception_handler(request: Request, exc: FatalError) -> JSONResponse:
        logger.error(
            "fatal_error",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:  # type: ignore[type-arg]
    # pydantic's ctx may hold exception objects that JSONResponse cannot encode.
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
