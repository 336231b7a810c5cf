"""Translate domain errors into HTTP responses.

Routes let manager exceptions propagate; the handlers registered here map
them onto status codes with a ``{"detail": ...}`` body.
"""

import logging

from asyncpg.exceptions import InterfaceError, PostgresConnectionError
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from analytics import AnalyticsError
from database import DatabaseError
from listings import ListingError, ListingNotFoundError, ListingPermissionError
from notifications import NotificationError, NotificationNotFoundError
from orders import OrderError, OrderNotFoundError, OrderPermissionError
from refunds import RefundError, RefundNotFoundError, RefundPermissionError, RefundExistsError
from reports import ReportError
from support import (
    SupportError,
    TicketNotFoundError,
    DisputeNotFoundError,
    SupportPermissionError,
    DisputeExistsError
)
from users import UserError, UserNotFoundError, UserExistsError

logger = logging.getLogger(__name__)

DOMAIN_ERRORS = (
    AnalyticsError,
    ListingError,
    NotificationError,
    OrderError,
    RefundError,
    ReportError,
    SupportError,
    UserError
)

NOT_FOUND_ERRORS = (
    ListingNotFoundError,
    NotificationNotFoundError,
    OrderNotFoundError,
    RefundNotFoundError,
    TicketNotFoundError,
    DisputeNotFoundError,
    UserNotFoundError
)

PERMISSION_ERRORS = (
    ListingPermissionError,
    OrderPermissionError,
    RefundPermissionError,
    SupportPermissionError
)

CONFLICT_ERRORS = (
    RefundExistsError,
    DisputeExistsError,
    UserExistsError
)

def status_for(exc: Exception) -> int:
    """HTTP status code for a domain error."""
    if isinstance(exc, NOT_FOUND_ERRORS):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, PERMISSION_ERRORS):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, CONFLICT_ERRORS):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST

async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    code = status_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {code}: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})

async def database_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database unavailable"}
    )

async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )

def register_error_handlers(app: FastAPI) -> None:
    for error in DOMAIN_ERRORS:
        app.add_exception_handler(error, domain_error_handler)
    for error in (DatabaseError, PostgresConnectionError, InterfaceError):
        app.add_exception_handler(error, database_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

__all__ = ['register_error_handlers', 'status_for']
