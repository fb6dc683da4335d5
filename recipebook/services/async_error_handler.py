"""
Error taxonomy and database error classification.

Callers branch on KnownRequestError.code; every other error type is a
failure of the current call. Nothing here retries: a constraint violation or a
lock timeout is surfaced to the caller as soon as the driver reports it.
"""

import logging
import re
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

import asyncpg
from fastapi import status
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from recipebook.core.options import ErrorFormat, LogLevelName
from recipebook.utils.logger import Colors

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    UNIQUE_CONSTRAINT_VIOLATION = "unique_constraint_violation"
    RECORD_NOT_FOUND = "record_not_found"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    NULL_CONSTRAINT_VIOLATION = "null_constraint_violation"
    INCONSISTENT_RELATION = "inconsistent_relation"
    TRANSACTION_START_TIMEOUT = "transaction_start_timeout"
    TRANSACTION_EXPIRED = "transaction_expired"


def render_message(
    message: str,
    meta: Optional[Dict[str, Any]] = None,
    error_format: ErrorFormat = ErrorFormat.COLORLESS,
    invocation: Optional[str] = None,
) -> str:
    """Render an error message in the configured error format."""
    error_format = ErrorFormat(error_format)
    if error_format == ErrorFormat.MINIMAL or not invocation:
        return message

    header = f"Invalid `{invocation}` invocation:"
    lines = [message]
    for key, value in (meta or {}).items():
        lines.append(f"  {key}: {value}")

    if error_format == ErrorFormat.PRETTY:
        header = f"{Colors.BOLD}{Colors.RED}{header}{Colors.RESET}"
        lines = [f"{Colors.DIM}{line}{Colors.RESET}" if line.startswith("  ") else line for line in lines]

    return "\n\n".join([header, "\n".join(lines)])


class RecipeBookError(Exception):
    """Base exception for data access errors."""

    def __init__(
        self,
        message: str,
        *,
        meta: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        error_format: ErrorFormat = ErrorFormat.COLORLESS,
        invocation: Optional[str] = None,
    ):
        self.message = message
        self.meta = meta or {}
        self.original_error = original_error
        self.invocation = invocation
        super().__init__(render_message(message, self.meta, error_format, invocation))


class KnownRequestError(RecipeBookError):
    """A database rejection with a stable, machine-readable code."""

    def __init__(self, code: ErrorCode, message: str, **kwargs):
        self.code = ErrorCode(code)
        super().__init__(message, **kwargs)


class NotFoundError(KnownRequestError):
    def __init__(self, message: str = "Record not found", **kwargs):
        super().__init__(ErrorCode.RECORD_NOT_FOUND, message, **kwargs)


class UnknownRequestError(RecipeBookError):
    """Driver or database failure with no mapped code."""


class InitializationError(RecipeBookError):
    """The database could not be reached when the client connected."""


class ValidationError(RecipeBookError):
    """Arguments were rejected before any query was issued."""

    def __init__(self, message: str, *, path: Optional[List[str]] = None, **kwargs):
        self.path = list(path or [])
        if self.path:
            kwargs.setdefault("meta", {})["argument"] = ".".join(str(p) for p in self.path)
        super().__init__(message, **kwargs)


_UNIQUE_KEY_RE = re.compile(r"Key \((?P<fields>[^)]+)\)=")
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (?P<columns>[\w., ]+)")


class AsyncErrorHandler:
    """
    Classifies SQLAlchemy and driver errors into the error taxonomy.

    PostgreSQL reports a SQLSTATE through asyncpg; SQLite only reports a
    message, so both are checked.
    """

    SQLSTATE_MAPPINGS = {
        "23505": ErrorCode.UNIQUE_CONSTRAINT_VIOLATION,
        "23503": ErrorCode.FOREIGN_KEY_VIOLATION,
        "23502": ErrorCode.NULL_CONSTRAINT_VIOLATION,
    }

    SQLITE_MESSAGE_MAPPINGS = {
        "UNIQUE constraint failed": ErrorCode.UNIQUE_CONSTRAINT_VIOLATION,
        "FOREIGN KEY constraint failed": ErrorCode.FOREIGN_KEY_VIOLATION,
        "NOT NULL constraint failed": ErrorCode.NULL_CONSTRAINT_VIOLATION,
    }

    ASYNCPG_MAPPINGS = {
        asyncpg.UniqueViolationError: ErrorCode.UNIQUE_CONSTRAINT_VIOLATION,
        asyncpg.ForeignKeyViolationError: ErrorCode.FOREIGN_KEY_VIOLATION,
        asyncpg.NotNullViolationError: ErrorCode.NULL_CONSTRAINT_VIOLATION,
    }

    MESSAGES = {
        ErrorCode.UNIQUE_CONSTRAINT_VIOLATION: "Unique constraint failed",
        ErrorCode.FOREIGN_KEY_VIOLATION: "Foreign key constraint failed",
        ErrorCode.NULL_CONSTRAINT_VIOLATION: "Null constraint violation",
    }

    @classmethod
    def classify_error(cls, error: Exception) -> Optional[ErrorCode]:
        """
        Map a database error to a known error code.

        Args:
            error: The exception raised by SQLAlchemy or the driver

        Returns:
            The matching ErrorCode, or None when the error is not a known request error
        """
        driver_error = error.orig if isinstance(error, DBAPIError) else error
        candidates = [driver_error, getattr(driver_error, "__cause__", None)]

        for candidate in candidates:
            if candidate is None:
                continue
            for exc_type, code in cls.ASYNCPG_MAPPINGS.items():
                if isinstance(candidate, exc_type):
                    return code
            sqlstate = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
            if sqlstate in cls.SQLSTATE_MAPPINGS:
                return cls.SQLSTATE_MAPPINGS[sqlstate]

        if isinstance(error, IntegrityError):
            text = str(driver_error)
            for fragment, code in cls.SQLITE_MESSAGE_MAPPINGS.items():
                if fragment in text:
                    return code

        return None

    @classmethod
    def extract_meta(cls, error: Exception, code: ErrorCode) -> Dict[str, Any]:
        """Pull the offending constraint target out of the driver message."""
        if code != ErrorCode.UNIQUE_CONSTRAINT_VIOLATION:
            return {}

        driver_error = error.orig if isinstance(error, DBAPIError) else error
        for candidate in (getattr(driver_error, "__cause__", None), driver_error):
            detail = getattr(candidate, "detail", None) or ""
            match = _UNIQUE_KEY_RE.search(detail)
            if match:
                return {"target": [field.strip() for field in match.group("fields").split(",")]}

        match = _SQLITE_UNIQUE_RE.search(str(driver_error))
        if match:
            columns = [column.strip().split(".")[-1] for column in match.group("columns").split(",")]
            return {"target": columns}
        return {}

    @classmethod
    def to_request_error(
        cls,
        error: Exception,
        invocation: str,
        error_format: ErrorFormat = ErrorFormat.COLORLESS,
    ) -> RecipeBookError:
        """
        Convert a database error into a KnownRequestError or UnknownRequestError.

        Args:
            error: The exception that occurred
            invocation: "<Model>.<operation>()" label for the message
            error_format: How the message is rendered

        Returns:
            The exception to raise in place of the original
        """
        code = cls.classify_error(error)
        if code is not None:
            return KnownRequestError(
                code,
                cls.MESSAGES[code],
                meta=cls.extract_meta(error, code),
                original_error=error,
                error_format=error_format,
                invocation=invocation,
            )

        if isinstance(error, OperationalError):
            message = "Database operation failed"
        else:
            message = "An unexpected database error occurred"
        return UnknownRequestError(
            f"{message}: {error}",
            original_error=error,
            error_format=error_format,
            invocation=invocation,
        )

    @classmethod
    def http_status(cls, error: Exception) -> int:
        """HTTP status code for an error raised by the data access layer."""
        if isinstance(error, ValidationError):
            return status.HTTP_400_BAD_REQUEST
        if isinstance(error, KnownRequestError):
            return {
                ErrorCode.RECORD_NOT_FOUND: status.HTTP_404_NOT_FOUND,
                ErrorCode.UNIQUE_CONSTRAINT_VIOLATION: status.HTTP_409_CONFLICT,
                ErrorCode.FOREIGN_KEY_VIOLATION: status.HTTP_409_CONFLICT,
                ErrorCode.NULL_CONSTRAINT_VIOLATION: status.HTTP_400_BAD_REQUEST,
                ErrorCode.TRANSACTION_START_TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
                ErrorCode.TRANSACTION_EXPIRED: status.HTTP_504_GATEWAY_TIMEOUT,
            }.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if isinstance(error, InitializationError):
            return status.HTTP_503_SERVICE_UNAVAILABLE
        return status.HTTP_500_INTERNAL_SERVER_ERROR


# Decorator for repository and client operations
def handle_async_db_errors(operation_name: str):
    """
    Decorator translating database errors raised by a data access operation.

    The wrapped method's instance must expose ``context`` with the error format
    and log emitter; a ``model`` attribute, when present, prefixes the
    invocation label.

    Args:
        operation_name: Name of the operation used in error messages
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            model = getattr(self, "model", None)
            invocation = f"{model.__name__}.{operation_name}()" if model is not None else f"{operation_name}()"
            try:
                return await func(self, *args, **kwargs)
            except RecipeBookError as e:
                if e.invocation is None:
                    e.invocation = invocation
                    e.args = (render_message(e.message, e.meta, self.context.error_format, invocation),)
                self.context.emitter.emit(LogLevelName.ERROR, e.message, target=f"recipebook.{operation_name}")
                raise
            except (SQLAlchemyError, asyncpg.PostgresError) as e:
                translated = AsyncErrorHandler.to_request_error(e, invocation, self.context.error_format)
                logger.error(f"Error in {invocation}: {e}")
                self.context.emitter.emit(LogLevelName.ERROR, translated.message, target=f"recipebook.{operation_name}")
                raise translated from e
        return wrapper
    return decorator
