"""
Reserva exception hierarchy.

Services raise these; ``register_exception_handlers`` turns them into a JSON
body of the form ``{"code", "message", "details"}`` so the client can show the
message and, for stock problems, the offending items.

    ReservaError
    ├── Unauthenticated
    ├── PermissionDenied
    ├── NotFound
    ├── InvalidRequest
    │   └── EmptyCart
    ├── ProductUnavailable
    ├── StockChanged
    ├── TransitionDenied
    ├── ConcurrentModification
    └── PersistenceFailure
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ReservaError(Exception):
    """
    Base exception for all domain errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code
        details: Extra context for the client (e.g. offending product ids)
    """

    default_code: str = "RESERVA_ERROR"
    status_code: int = 400
    headers: Optional[Dict[str, str]] = None

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class Unauthenticated(ReservaError):
    """No valid profile for the operation."""
    default_code = "UNAUTHENTICATED"
    status_code = 401
    headers = {"WWW-Authenticate": "Bearer"}

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, **kwargs)


class PermissionDenied(ReservaError):
    default_code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", **kwargs):
        super().__init__(message, **kwargs)


class NotFound(ReservaError):
    default_code = "NOT_FOUND"
    status_code = 404


class InvalidRequest(ReservaError):
    default_code = "INVALID_REQUEST"
    status_code = 422


class EmptyCart(InvalidRequest):
    default_code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty", **kwargs):
        super().__init__(message, **kwargs)


class ProductUnavailable(ReservaError):
    """Item is inactive or out of stock at add time."""
    default_code = "PRODUCT_UNAVAILABLE"
    status_code = 400

    def __init__(
        self,
        message: str,
        product_id: Optional[int] = None,
        pack_id: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({"product_id": product_id, "pack_id": pack_id})
        super().__init__(message, details=details, **kwargs)


class StockChanged(ReservaError):
    """Conversion-time re-validation failed for one or more cart lines."""
    default_code = "STOCK_CHANGED"
    status_code = 409

    def __init__(
        self,
        message: str,
        product_ids: Optional[List[int]] = None,
        pack_ids: Optional[List[int]] = None,
        **kwargs
    ):
        self.product_ids = product_ids or []
        self.pack_ids = pack_ids or []
        details = kwargs.pop("details", {})
        details.update({"product_ids": self.product_ids, "pack_ids": self.pack_ids})
        super().__init__(message, details=details, **kwargs)


class TransitionDenied(ReservaError):
    default_code = "TRANSITION_DENIED"
    status_code = 409

    def __init__(self, message: str, current: str = None, requested: str = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"current": current, "requested": requested})
        super().__init__(message, details=details, **kwargs)


class ConcurrentModification(ReservaError):
    """The row changed since the caller last read it."""
    default_code = "CONCURRENT_MODIFICATION"
    status_code = 409


class PersistenceFailure(ReservaError):
    """A store call failed; the surrounding transaction was rolled back."""
    default_code = "PERSISTENCE_FAILURE"
    status_code = 503


HTTP_ERROR_CODES: Dict[int, str] = {
    401: Unauthenticated.default_code,
    403: PermissionDenied.default_code,
    404: NotFound.default_code,
    422: InvalidRequest.default_code,
}


async def reserva_error_handler(request: Request, exc: ReservaError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc!r}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors (missing bearer token, unknown route) in the same envelope."""
    body = {
        "code": HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        "message": str(exc.detail),
        "details": {},
    }
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = {
        "code": InvalidRequest.default_code,
        "message": "Request validation failed",
        "details": {"errors": jsonable_encoder(exc.errors())},
    }
    return JSONResponse(status_code=422, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReservaError, reserva_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
