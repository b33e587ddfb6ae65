"""Exception types and FastAPI error handlers."""

import logging

import pydantic
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StoreAdapterError(Exception):
    """An object store call failed."""


class IndexUnavailable(Exception):
    """The persisted index snapshot is missing or unreadable."""


class MaintenanceTaskFailure(Exception):
    """A merge or rebuild aborted; the previous snapshot stays authoritative."""


class MaintenanceLockHeld(MaintenanceTaskFailure):
    """Another maintenance task holds the guard."""

    def __init__(self, task: str, expires_at: int):
        super().__init__(f"Maintenance guard held by '{task}' until {expires_at}")
        self.task = task
        self.expires_at = expires_at


async def handle_store_adapter_errors(request: Request, exc: StoreAdapterError) -> JSONResponse:
    """Surface object store faults as an internal error."""
    logger.error(f"Store error while handling {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "message": str(exc)},
    )


async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": [
                {
                    "msg": error["msg"],
                    "input": error.get("input"),
                }
                for error in errors
            ]
        },
    )


async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that propagates to the top of the middleware stack."""
    try:
        return await call_next(request)
    except Exception as err:
        logger.exception(err)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
