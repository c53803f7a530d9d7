from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class RequestError(Exception):
    """A request rejected before any work is done, rendered as a JSON body with a stable code."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "BAD_REQUEST"

    def __init__(self, message: str, error_code: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code

    def body(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.error_code}


class InvalidTimezoneError(RequestError):
    error_code = "INVALID_TIMEZONE"

    def __init__(self) -> None:
        super().__init__("Invalid timezone")

    def body(self) -> Dict[str, Any]:
        return {"error": self.message, "validExample": "America/New_York"}


class SyncRequestError(RequestError):
    """Rejected sync envelope; no session of the batch is processed."""


async def handle_request_error(request: Request, exc: RequestError) -> JSONResponse:
    logger.info("request_rejected", path=request.url.path, code=exc.error_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.body())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestError, handle_request_error)
