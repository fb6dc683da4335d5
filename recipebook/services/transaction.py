import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recipebook.core.options import IsolationLevel, LogLevelName, TransactionOptions
from recipebook.db.async_session import AsyncDatabaseManager
from recipebook.services.async_error_handler import (
    AsyncErrorHandler,
    ErrorCode,
    KnownRequestError,
    ValidationError,
)
from recipebook.utils.logger import LogEmitter

logger = logging.getLogger(__name__)

Operation = Callable[[Any], Awaitable[Any]]


class AsyncTransactionManager:
    """
    Runs batches and interactive callbacks inside one database transaction.

    The callback receives a transaction client bound to a single session; it
    commits when the callback returns and rolls back when it raises or runs
    past its timeout.
    """

    def __init__(
        self,
        db: AsyncDatabaseManager,
        client_factory: Callable[[AsyncSession], Any],
        defaults: TransactionOptions,
        emitter: LogEmitter,
    ):
        """
        Initialize transaction manager.

        Args:
            db: Database manager providing connections
            client_factory: Builds the transaction client for a session
            defaults: Client-level max_wait / timeout / isolation level
            emitter: Client log emitter
        """
        self.db = db
        self.client_factory = client_factory
        self.defaults = defaults
        self.emitter = emitter

    async def execute_in_transaction(self, operations: List[Operation], **options) -> List[Any]:
        """
        Execute multiple operations in a single transaction.

        Args:
            operations: Async callables, each receiving the transaction client
            **options: max_wait, timeout, isolation_level overrides

        Returns:
            List of operation results, in order

        Raises:
            Exception: If any operation fails, all operations are rolled back
        """
        async def run_all(tx):
            results = []
            for operation in operations:
                results.append(await operation(tx))
            return results

        return await self.run(run_all, **options)

    async def run(
        self,
        callback: Operation,
        max_wait: Optional[int] = None,
        timeout: Optional[int] = None,
        isolation_level: Optional[IsolationLevel] = None,
    ) -> Any:
        """
        Run an interactive transaction.

        Args:
            callback: ``async (tx) -> result``
            max_wait: Milliseconds to wait for a connection
            timeout: Milliseconds the callback may run
            isolation_level: Isolation level of the transaction

        Returns:
            Whatever the callback returned

        Raises:
            KnownRequestError: TRANSACTION_START_TIMEOUT or TRANSACTION_EXPIRED
            ValidationError: If the isolation level is not supported by the database
        """
        max_wait = max_wait or self.defaults.max_wait
        timeout = timeout or self.defaults.timeout
        isolation_level = isolation_level or self.defaults.isolation_level

        async with self._session(isolation_level, max_wait) as session:
            tx = self.client_factory(session)
            try:
                result = await asyncio.wait_for(callback(tx), timeout=timeout / 1000)
            except asyncio.TimeoutError as e:
                await session.rollback()
                message = f"Transaction exceeded its timeout of {timeout} ms and was rolled back"
                logger.warning(message)
                self.emitter.emit(LogLevelName.WARN, message, target="recipebook.transaction")
                raise KnownRequestError(ErrorCode.TRANSACTION_EXPIRED, message, meta={"timeout": timeout}) from e
            except BaseException:
                await session.rollback()
                raise

            try:
                await session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Error committing transaction: {e}")
                await session.rollback()
                raise AsyncErrorHandler.to_request_error(e, "transaction()") from e
            return result

    @asynccontextmanager
    async def _session(self, isolation_level: Optional[IsolationLevel], max_wait: int):
        async with AsyncExitStack() as stack:
            try:
                connection = await stack.enter_async_context(
                    self.db.transaction_connection(isolation_level, max_wait / 1000)
                )
            except asyncio.TimeoutError as e:
                message = f"Unable to start a transaction within {max_wait} ms"
                self.emitter.emit(LogLevelName.WARN, message, target="recipebook.transaction")
                raise KnownRequestError(ErrorCode.TRANSACTION_START_TIMEOUT, message, meta={"max_wait": max_wait}) from e
            except ArgumentError as e:
                raise ValidationError(
                    f"Isolation level {IsolationLevel(isolation_level).value} is not supported by {self.db.dialect_name}",
                    path=["isolation_level"],
                    original_error=e,
                ) from e

            yield await stack.enter_async_context(
                AsyncSession(bind=connection, expire_on_commit=False, autoflush=False)
            )
