"""
Error handling for the RPC surface: every failure is answered with a JSON
object carrying a human readable ``error`` reason, never a stack trace.
"""
from typing import Optional, Dict, Any
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from pydantic import BaseModel
import logging
import traceback

logger = logging.getLogger(__name__)

class ErrorResponse(BaseModel):
    """Error body returned to RPC callers"""
    error: str
    code: str
    trace_id: Optional[str] = None

class ErrorCodes:
    """Standard error codes"""
    # Caller faults
    INVALID_INPUT = "INVALID_INPUT"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    ACCOUNT_EXISTS = "ACCOUNT_EXISTS"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"

    # System Errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DATABASE_ERROR = "DATABASE_ERROR"

    # External Service Errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"

class BusinessLogicError(Exception):
    """Raised when the caller asked for something that cannot be done"""
    def __init__(self, code: str, message: str, field: str = None, context: Dict[str, Any] = None):
        self.code = code
        self.message = message
        self.field = field
        self.context = context or {}
        super().__init__(message)

class ServiceError(Exception):
    """Raised when a backing service (database, node, cache) failed"""
    def __init__(self, code: str, message: str, original_error: Exception = None):
        self.code = code
        self.message = message
        self.original_error = original_error
        super().__init__(message)

class AccountExistsError(BusinessLogicError):
    def __init__(self, account: str):
        super().__init__(ErrorCodes.ACCOUNT_EXISTS, "account already exists", field="token",
                         context={"account": account})

class ProvisioningError(ServiceError):
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(ErrorCodes.DATABASE_ERROR, message, original_error)

class NodeCallError(ServiceError):
    def __init__(self, message: str, original_error: Exception = None, timeout: bool = False):
        code = ErrorCodes.TIMEOUT_ERROR if timeout else ErrorCodes.EXTERNAL_SERVICE_ERROR
        super().__init__(code, message, original_error)

def create_error_response(
    error_code: str,
    message: str,
    status_code: int = 500,
    trace_id: str = None,
    headers: Dict[str, str] = None,
) -> JSONResponse:
    """Create the JSON error body sent back to the caller"""
    body = ErrorResponse(error=message, code=error_code, trace_id=trace_id)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers
    )

async def business_logic_exception_handler(request: Request, exc: BusinessLogicError):
    status_code_map = {
        ErrorCodes.ACCOUNT_EXISTS: 409,
        ErrorCodes.INVALID_INPUT: 400,
        ErrorCodes.UNKNOWN_ACTION: 400,
    }

    status_code = status_code_map.get(exc.code, 400)
    trace_id = getattr(request.state, 'trace_id', None)

    logger.warning(f"Business logic error: {exc.code} - {exc.message}", extra={
        "error_code": exc.code,
        "trace_id": trace_id,
        "field": exc.field,
        "context": exc.context
    })

    return create_error_response(exc.code, exc.message, status_code, trace_id)

async def service_exception_handler(request: Request, exc: ServiceError):
    status_code_map = {
        ErrorCodes.SERVICE_UNAVAILABLE: 503,
        ErrorCodes.DATABASE_ERROR: 503,
        ErrorCodes.EXTERNAL_SERVICE_ERROR: 502,
        ErrorCodes.TIMEOUT_ERROR: 504,
    }

    status_code = status_code_map.get(exc.code, 500)
    trace_id = getattr(request.state, 'trace_id', None)

    logger.error(f"Service error: {exc.code} - {exc.message}", extra={
        "error_code": exc.code,
        "trace_id": trace_id,
        "original_error": str(exc.original_error) if exc.original_error else None
    })

    return create_error_response(exc.code, exc.message, status_code, trace_id)

async def http_exception_handler(request: Request, exc: HTTPException):
    """Routing level errors (unknown path, wrong method) raised by Starlette"""
    trace_id = getattr(request.state, 'trace_id', None)

    status_to_code = {
        400: ErrorCodes.INVALID_INPUT,
        404: ErrorCodes.NOT_FOUND,
        405: ErrorCodes.METHOD_NOT_ALLOWED,
        500: ErrorCodes.INTERNAL_SERVER_ERROR,
        503: ErrorCodes.SERVICE_UNAVAILABLE,
    }
    error_code = status_to_code.get(exc.status_code, ErrorCodes.INTERNAL_SERVER_ERROR)

    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}", extra={"trace_id": trace_id})

    return create_error_response(error_code, str(exc.detail), exc.status_code, trace_id, exc.headers)

async def general_exception_handler(request: Request, exc: Exception):
    trace_id = getattr(request.state, 'trace_id', None)

    logger.error(f"Unexpected error: {str(exc)}", extra={
        "trace_id": trace_id,
        "traceback": traceback.format_exc()
    })

    # Don't expose internal error details
    return create_error_response(
        ErrorCodes.INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        500,
        trace_id
    )

def add_error_handlers(app):
    """Add all error handlers to FastAPI app"""
    app.add_exception_handler(BusinessLogicError, business_logic_exception_handler)
    app.add_exception_handler(ServiceError, service_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
