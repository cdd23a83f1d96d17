"""
Error Handling for Repay Claims
Exception hierarchy, best-effort fetch outcomes and error tracking

Features:
- Custom exception classes
- FetchResult outcomes for best-effort readers
- Structured JSON error responses
- Error tracking and aggregation
"""

import logging
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Generic, Optional, TypeVar
from enum import Enum

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    RPC_ERROR = "RPC_ERROR"
    SIMULATION_ERROR = "SIMULATION_ERROR"
    MALFORMED_DATA = "MALFORMED_DATA"


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class RepayError(Exception):
    """Base exception for the claim query pipeline"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "success": False,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp.isoformat()
            }
        }


class ValidationError(RepayError):
    """Input validation error"""
    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, 400, details)


class ConfigurationError(RepayError):
    """Missing or inconsistent configuration"""
    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, 500, details)


class RpcError(RepayError):
    """Sui JSON-RPC call failed (transport or error object)"""
    def __init__(self, method: str, message: str, rpc_code: int = None):
        details = {"method": method}
        if rpc_code is not None:
            details["rpc_code"] = rpc_code
        super().__init__(message, ErrorCode.RPC_ERROR, 502, details)
        self.method = method


class SimulationError(RepayError):
    """Batched dev-inspect call failed for one address"""
    def __init__(self, address: str, message: str):
        super().__init__(message, ErrorCode.SIMULATION_ERROR, 500, {"address": address})
        self.address = address


class MalformedDataError(RepayError):
    """On-chain record did not have the expected shape"""
    def __init__(self, object_id: str, message: str):
        super().__init__(message, ErrorCode.MALFORMED_DATA, 500, {"object_id": object_id})


# ============================================
# FETCH OUTCOMES
# ============================================

T = TypeVar('T')


class FetchFailure(str, Enum):
    TRANSPORT = "transport"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """
    Outcome of a best-effort read.
    Exactly one of value / failure is set.
    """
    value: Optional[T] = None
    failure: Optional[FetchFailure] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, failure: FetchFailure, detail: str = "") -> "FetchResult[T]":
        return cls(failure=failure, detail=detail)


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """Tracks and aggregates errors for monitoring"""

    def __init__(self, max_errors: int = 1000):
        self.errors: list = []
        self.max_errors = max_errors
        self.error_counts: Dict[str, int] = {}

    def track(self, error: Exception, context: str = None):
        """Track an error"""
        error_type = type(error).__name__

        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

        error_info = {
            "type": error_type,
            "message": str(error),
            "context": context,
            "timestamp": datetime.now().isoformat(),
            "traceback": traceback.format_exc() if not isinstance(error, RepayError) else None
        }

        if isinstance(error, RepayError):
            error_info["code"] = error.code.value
            error_info["details"] = error.details

        self.errors.append(error_info)

        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]

        if not isinstance(error, RepayError) or error.status_code >= 500:
            logger.error(f"Error tracked: {error_type} - {str(error)[:200]}")

    def get_stats(self) -> Dict:
        """Get error statistics"""
        return {
            "total_errors": len(self.errors),
            "error_counts": self.error_counts,
            "recent_errors": self.errors[-10:],
            "timestamp": datetime.now().isoformat()
        }

    def clear(self):
        """Clear error history"""
        self.errors.clear()
        self.error_counts.clear()


# Global error tracker
error_tracker = ErrorTracker()


# ============================================
# FASTAPI EXCEPTION HANDLERS
# ============================================

async def repay_exception_handler(request: Request, exc: RepayError) -> JSONResponse:
    """Handle RepayError exceptions"""
    error_tracker.track(exc, str(request.url.path))

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    error_tracker.track(exc, str(request.url.path))

    logger.error(f"Unhandled exception: {traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "timestamp": datetime.now().isoformat()
            }
        }
    )


def register_exception_handlers(app):
    """Register exception handlers with FastAPI app"""
    app.add_exception_handler(RepayError, repay_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
