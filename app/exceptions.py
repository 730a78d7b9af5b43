"""Error taxonomy and the FastAPI handlers that render it"""

from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException
import structlog

logger = structlog.get_logger()


class AppError(Exception):
    """Base class for errors that map onto an HTTP response"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: Optional[str] = None

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message}
        if self.error_code:
            body["errorCode"] = self.error_code
        return body


class ValidationError(AppError):
    """Malformed or missing input"""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundError(AppError):
    """Unknown id"""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class ConflictError(AppError):
    """A state-machine precondition did not hold at write time"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        table_number: Optional[str] = None,
        current_status: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.table_number = table_number
        self.current_status = current_status

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.table_number is not None:
            body["table"] = {
                "tableNumber": self.table_number,
                "status": self.current_status,
            }
        return body


class StorageError(AppError):
    """Entity store failure; not retried here"""

    error_code = "STORAGE_ERROR"


class NotificationError(AppError):
    """Notifier failure; logged and swallowed, never returned to a caller"""

    error_code = "NOTIFICATION_ERROR"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message, error_code=exc.error_code)
        content = {"success": False, "message": "Internal server error", "errorCode": exc.error_code}
    else:
        logger.info("Request rejected", path=request.url.path, error=exc.message, error_code=exc.error_code)
        content = exc.to_dict()
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    logger.info("Request validation failed", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": "Validation failed",
            "errorCode": ValidationError.error_code,
            "errors": errors,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    return await app_error_handler(request, StorageError(str(exc)))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


EXCEPTION_HANDLERS = {
    AppError: app_error_handler,
    RequestValidationError: request_validation_error_handler,
    HTTPException: http_exception_handler,
    SQLAlchemyError: storage_exception_handler,
    Exception: unhandled_exception_handler,
}


def register_exception_handlers(app) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
