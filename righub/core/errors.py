"""
Domain errors raised by the listing services.

Every error is recoverable by the caller and maps onto a 4xx response.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ListingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ListingError):
    """Malformed input: negative price, past reservation deadline, bad media."""
    status_code = 400


class NotFoundError(ListingError):
    status_code = 404


class InvalidTransitionError(ListingError):
    """The requested status change is not allowed from the current status."""
    status_code = 409


class ConflictError(ListingError):
    """Unique constraint hit or a concurrent writer won the race."""
    status_code = 409


async def listing_error_handler(request: Request, exc: ListingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ListingError, listing_error_handler)
