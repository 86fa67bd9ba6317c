"""Exception handler for structured error responses."""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from ..exceptions import PermissionsException

logger = logging.getLogger(__name__)


async def permissions_exception_handler(request: Request, exc: PermissionsException) -> JSONResponse:
    """
    Handle permission engine exceptions and return structured JSON responses.

    Logs error details and converts exception to standardized JSON format.
    """
    logger.error(
        f"PermissionsException: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PermissionsException, permissions_exception_handler)
