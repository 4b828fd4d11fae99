import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from order_api.core.exceptions import (
    ConcurrentModificationError,
    IntegrityError,
    InvalidStateTransitionError,
    NotFoundError,
    OrderDomainError,
    OrderLockedError,
    ValidationError,
)
from order_api.models.schemas import ErrorResponse

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
STATUS_CODES = (
    (OrderLockedError, 409),
    (NotFoundError, 404),
    (ValidationError, 400),
    (IntegrityError, 409),
    (InvalidStateTransitionError, 409),
    (ConcurrentModificationError, 409),
)


def status_code_for(exc: OrderDomainError) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def domain_error_handler(request: Request, exc: OrderDomainError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code == 409:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(detail=exc.message, code=exc.code, details=exc.details)),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderDomainError, domain_error_handler)
