"""
Client entry point.

    async with RecipeBookClient(log=["query"]) as client:
        bread = await client.recipe.find_unique(where={"id": 1}, include={"category": True})
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from recipebook.core.config import Settings, settings as default_settings
from recipebook.core.options import ClientOptions, IsolationLevel, LogLevelName
from recipebook.db.async_session import AsyncDatabaseManager
from recipebook.services.async_error_handler import InitializationError, ValidationError, handle_async_db_errors
from recipebook.services.base import RepositoryContext
from recipebook.services.query_builder import pydantic_to_validation_error
from recipebook.services.repositories import REPOSITORIES, check_default_omit
from recipebook.services.transaction import AsyncTransactionManager, Operation
from recipebook.utils.logger import EventCallback, LogEmitter

logger = logging.getLogger(__name__)


class _RepositoryHost:
    """Repositories and raw queries over one repository context."""

    def _bind(self, context: RepositoryContext) -> None:
        self.context = context
        for name, repository_class in REPOSITORIES.items():
            setattr(self, name, repository_class(context))

    @handle_async_db_errors("execute_raw")
    async def execute_raw(self, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        """
        Run a raw statement and return the number of affected rows.

        Args:
            sql: SQL text with named ``:param`` placeholders
            params: Values for the placeholders
        """
        async with self.context.session_scope() as session:
            result = await session.execute(text(sql), params or {})
            return result.rowcount

    @handle_async_db_errors("query_raw")
    async def query_raw(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a raw query and return its rows as dicts keyed by column name."""
        async with self.context.session_scope() as session:
            result = await session.execute(text(sql), params or {})
            return [dict(row._mapping) for row in result]


class TransactionClient(_RepositoryHost):
    """Repositories bound to the session of one running transaction."""

    def __init__(self, session: AsyncSession, parent: "RecipeBookClient"):
        @asynccontextmanager
        async def session_scope() -> AsyncGenerator[AsyncSession, None]:
            # Commit and rollback belong to the transaction owner
            yield session

        self._bind(RepositoryContext(
            session_scope=session_scope,
            dialect_name=parent.db.dialect_name,
            emitter=parent.emitter,
            error_format=parent.options.error_format,
            omit=parent.options.omit,
        ))


class RecipeBookClient(_RepositoryHost):
    """
    Data access client for the recipe catalog.

    Args:
        options: ClientOptions or an equivalent dict; when omitted, options are
            read from settings and the keyword overrides below
        settings: Environment settings used for defaults and pool sizing
        **overrides: datasource_url, error_format, log, transaction_options, omit
    """

    def __init__(
        self,
        options: Union[ClientOptions, Dict[str, Any], None] = None,
        settings: Settings = default_settings,
        **overrides,
    ):
        try:
            if options is None:
                options = ClientOptions.from_settings(settings, **overrides)
            elif not isinstance(options, ClientOptions):
                options = ClientOptions.model_validate(options)
        except PydanticValidationError as e:
            raise pydantic_to_validation_error(e, ["options"]) from e
        check_default_omit(options.omit)

        self.options = options
        self.emitter = LogEmitter(options)
        self.db = AsyncDatabaseManager(options.datasource_url, emitter=self.emitter, settings=settings)
        self._bind(RepositoryContext(
            session_scope=self._session_scope,
            dialect_name=self.db.dialect_name,
            emitter=self.emitter,
            error_format=options.error_format,
            omit=options.omit,
        ))
        self.transactions = AsyncTransactionManager(
            self.db,
            client_factory=lambda session: TransactionClient(session, self),
            defaults=options.transaction_options,
            emitter=self.emitter,
        )

    def _session_scope(self):
        return self.db.session_scope()

    async def connect(self) -> None:
        """Open the engine if needed and check that the database answers."""
        self.db.ensure_initialized()
        if not await self.db.test_connection():
            raise InitializationError(
                "Can't reach database server",
                meta={"url": self.db.async_engine.url.render_as_string(hide_password=True)},
                error_format=self.options.error_format,
            )
        self.emitter.emit(LogLevelName.INFO, "Connected to database", target="recipebook.engine")

    async def disconnect(self) -> None:
        await self.db.close()

    async def __aenter__(self) -> "RecipeBookClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    def on(self, level: Union[LogLevelName, str], callback: EventCallback) -> None:
        """Subscribe to a log level configured with ``emit="event"``."""
        try:
            self.emitter.subscribe(LogLevelName(level), callback)
        except ValueError as e:
            raise ValidationError(str(e), path=["level"]) from e

    async def batch(self, operations: List[Operation], **options) -> List[Any]:
        """
        Run operations in one all-or-nothing transaction.

        Each operation is ``async (tx) -> result``; the results are returned in order.
        """
        return await self.transactions.execute_in_transaction(operations, **options)

    async def transaction(
        self,
        callback: Operation,
        max_wait: Optional[int] = None,
        timeout: Optional[int] = None,
        isolation_level: Optional[IsolationLevel] = None,
    ) -> Any:
        return await self.transactions.run(callback, max_wait=max_wait, timeout=timeout, isolation_level=isolation_level)
