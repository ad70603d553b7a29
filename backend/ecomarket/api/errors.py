"""
Mapping of domain errors to HTTP responses.
"""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ecomarket.core.errors import AlreadyPurchasedError, ErrorKind, MarketplaceError
from ecomarket.schemas.purchase import PurchaseResponse

logger = structlog.get_logger()

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.ALREADY_PURCHASED: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INSUFFICIENT_BALANCE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INSUFFICIENT_DATA: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}


def error_body(exc: MarketplaceError) -> dict:
    body = {
        "error": exc.code,
        "kind": exc.kind.value,
        "detail": exc.message,
    }
    if isinstance(exc, AlreadyPurchasedError):
        body["purchase"] = PurchaseResponse.model_validate(exc.purchase).model_dump(mode="json")
    return body


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Turn a MarketplaceError into a JSON response by its kind."""
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    logger.info(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        kind=exc.kind.value,
        code=exc.code,
        status=status_code,
    )
    return JSONResponse(status_code=status_code, content=error_body(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
