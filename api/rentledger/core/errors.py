"""
Error taxonomy for the rental pipeline.

Services raise these; the handler registered in ``main`` renders them as
``{"kind": ..., "detail": ...}`` with the matching status code.  Only
``PersistenceFailure`` is worth retrying; everything else needs a different
input or a different actor.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RentalError(Exception):
    kind: str = "RentalError"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.detail, "retryable": self.retryable}


class Unauthorized(RentalError):
    kind = "Unauthorized"
    status_code = 403


class NotFound(RentalError):
    kind = "NotFound"
    status_code = 404


class IllegalTransition(RentalError):
    kind = "IllegalTransition"
    status_code = 409


class Conflict(RentalError):
    kind = "Conflict"
    status_code = 409


class InvalidReading(RentalError):
    kind = "InvalidReading"
    status_code = 422


class InvalidAmount(RentalError):
    kind = "InvalidAmount"
    status_code = 422


class PersistenceFailure(RentalError):
    kind = "PersistenceFailure"
    status_code = 503
    retryable = True


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RentalError)
    async def rental_error_handler(request: Request, exc: RentalError):
        if exc.retryable:
            logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.detail)
        else:
            logger.info("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
