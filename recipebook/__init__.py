"""Async data access layer for a recipe catalog."""

from recipebook.client import RecipeBookClient, TransactionClient
from recipebook.core.options import ClientOptions, ErrorFormat, IsolationLevel, LogLevelName
from recipebook.services.async_error_handler import (
    ErrorCode,
    InitializationError,
    KnownRequestError,
    NotFoundError,
    RecipeBookError,
    UnknownRequestError,
    ValidationError,
)

__all__ = [
    "RecipeBookClient",
    "TransactionClient",
    "ClientOptions",
    "ErrorFormat",
    "IsolationLevel",
    "LogLevelName",
    "ErrorCode",
    "RecipeBookError",
    "KnownRequestError",
    "NotFoundError",
    "UnknownRequestError",
    "InitializationError",
    "ValidationError",
]
