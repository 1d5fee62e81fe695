"""
Error taxonomy for data store access.

ConfigurationError  - store credentials missing, checked before any call
PersistenceError    - a read or write against the store failed
NetworkError        - transport-level failure, a PersistenceError for callers
"""
from typing import Any, Dict, Optional

import requests

from gps_dashboard.logging_config import get_logger

logger = get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Data store is not configured. Please set SUPABASE_URL and SUPABASE_ANON_KEY."
)


class AppError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": self.message, "type": type(self).__name__}
        if self.code:
            data["code"] = self.code
        return data


class ConfigurationError(AppError):
    status_code = 503

    def __init__(self, message: str = NOT_CONFIGURED_MESSAGE, code: str = "NOT_CONFIGURED"):
        super().__init__(message, code)


class PersistenceError(AppError):
    status_code = 502

    def __init__(self, message: str, operation: Optional[str] = None,
                 code: Optional[str] = None, details: Any = None):
        super().__init__(message, code, details)
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.operation:
            data["operation"] = self.operation
        return data


class NetworkError(PersistenceError):
    pass


def _error_body(response) -> Dict[str, Any]:
    if response is None:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    return body if isinstance(body, dict) else {"message": str(body)}


def handle_store_error(error: Exception, operation: str) -> PersistenceError:
    """
    Convert a low-level exception into the store error taxonomy.

    Args:
        error: Exception raised while talking to the store
        operation: Name of the operation that triggered it (e.g. 'update vehicles')

    Returns:
        PersistenceError (or NetworkError for transport failures)
    """
    if isinstance(error, PersistenceError):
        return error

    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return NetworkError(
            f"Network connection failed during {operation}: {error}",
            operation=operation,
            code="NETWORK_ERROR",
            details=str(error),
        )

    if isinstance(error, requests.HTTPError):
        body = _error_body(error.response)
        message = body.get("message") or str(error)
        code = body.get("code")
        if code is None and error.response is not None:
            code = str(error.response.status_code)
        return PersistenceError(
            f"Database error during {operation}: {message}",
            operation=operation,
            code=code,
            details=body,
        )

    return PersistenceError(
        f"Database error during {operation}: {error}",
        operation=operation,
        code="UNKNOWN_ERROR",
        details=str(error),
    )


def log_error(context: str, error: Exception) -> None:
    """Log an error with its context, distinguishing transport failures."""
    if isinstance(error, NetworkError):
        logger.warning(f"[{context}] network error", error=str(error), code=error.code)
    else:
        logger.error(f"[{context}] {error}", error_type=type(error).__name__)
