from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool
from sqlalchemy import text, event
from typing import AsyncGenerator, Optional, Dict, Any
import logging
import asyncio
import time
from contextlib import asynccontextmanager

from recipebook.core.config import Settings, settings as default_settings, to_async_url
from recipebook.core.options import IsolationLevel, LogLevelName
from recipebook.utils.logger import LogEmitter

logger = logging.getLogger(__name__)


class AsyncDatabaseManager:
    """
    Manages async database connections and sessions.

    This class provides centralized management of async database connections,
    including connection pooling, session lifecycle management, query
    instrumentation and proper cleanup of resources.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        emitter: Optional[LogEmitter] = None,
        settings: Settings = default_settings,
    ):
        self.settings = settings
        self.database_url = to_async_url(database_url) if database_url else settings.async_database_url
        self.emitter = emitter
        self.async_engine = None
        self.async_session_factory = None
        self._is_initialized = False
        self._initialize_engine()

    @property
    def dialect_name(self) -> str:
        return self.async_engine.dialect.name

    def _initialize_engine(self):
        """Initialize the async database engine."""
        if not self.database_url:
            raise ValueError("Async database URL is not configured")

        url = make_url(self.database_url)
        logger.info(f"Initializing async database engine for {url.render_as_string(hide_password=True)}")

        engine_kwargs: Dict[str, Any] = {"echo": self.settings.ASYNC_DB_ECHO}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if not url.database or url.database == ":memory:":
                # One shared connection, otherwise every checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(
                pool_pre_ping=self.settings.ASYNC_DB_POOL_PRE_PING,
                pool_size=self.settings.ASYNC_DB_POOL_SIZE,
                max_overflow=self.settings.ASYNC_DB_MAX_OVERFLOW,
                pool_recycle=self.settings.ASYNC_DB_POOL_RECYCLE,
                pool_timeout=self.settings.ASYNC_DB_POOL_TIMEOUT,
            )
            if url.get_backend_name() == "postgresql":
                engine_kwargs["connect_args"] = {
                    "server_settings": {"application_name": "recipebook"},
                    "command_timeout": self.settings.ASYNC_DB_COMMAND_TIMEOUT,
                }

        self.async_engine = create_async_engine(url, **engine_kwargs)
        self._setup_engine_events()

        self.async_session_factory = async_sessionmaker(
            bind=self.async_engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Keep objects accessible after commit
            autoflush=False,
        )
        self._is_initialized = True

    def _setup_engine_events(self):
        """Set up SQLAlchemy events for SQLite pragmas and query logging."""
        sync_engine = self.async_engine.sync_engine

        if self.async_engine.dialect.name == "sqlite":
            @event.listens_for(sync_engine, "connect")
            def on_connect(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        @event.listens_for(sync_engine, "before_cursor_execute")
        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            conn.info.setdefault("query_start_time", []).append(time.perf_counter())

        @event.listens_for(sync_engine, "after_cursor_execute")
        def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            started = conn.info["query_start_time"].pop()
            if self.emitter is not None:
                self.emitter.emit_query(statement, parameters, (time.perf_counter() - started) * 1000)

    def ensure_initialized(self) -> None:
        """Recreate the engine if it was closed."""
        if not self._is_initialized:
            self._initialize_engine()

    def _require_initialized(self):
        if not self._is_initialized:
            raise RuntimeError("AsyncDatabaseManager is not initialized")

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session for one logical call: committed on success, rolled back on error.

        Yields:
            AsyncSession: Database session for async operations
        """
        self._require_initialized()

        async with self.async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction_connection(
        self,
        isolation_level: Optional[IsolationLevel] = None,
        max_wait: Optional[float] = None,
    ) -> AsyncGenerator[AsyncConnection, None]:
        """
        Check out one connection for an explicit transaction.

        Args:
            isolation_level: Isolation level applied to the connection
            max_wait: Seconds to wait for a pooled connection

        Raises:
            asyncio.TimeoutError: If no connection was available within max_wait
        """
        self._require_initialized()

        connection = await asyncio.wait_for(self.async_engine.connect(), timeout=max_wait)
        try:
            if isolation_level is not None:
                connection = await connection.execution_options(
                    isolation_level=IsolationLevel(isolation_level).value
                )
            yield connection
        finally:
            await connection.close()

    async def test_connection(self) -> bool:
        """
        Test the database connection.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            async with self.async_session_factory() as session:
                await session.execute(text("SELECT 1"))
                return True
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    async def get_connection_info(self) -> dict:
        """
        Get information about the current connection pool.

        Returns:
            dict: Connection pool information
        """
        if not self.async_engine:
            return {"status": "not_initialized"}

        pool = self.async_engine.pool
        try:
            return {
                "pool_size": pool.size(),
                "checked_in": pool.checkedin(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow(),
                "status": "initialized"
            }
        except AttributeError:
            # StaticPool and NullPool expose no sizing
            return {
                "status": "initialized",
                "pool_type": str(type(pool).__name__),
            }

    async def close(self):
        """
        Close the async database engine and all connections.
        """
        if self.async_engine:
            try:
                await self.async_engine.dispose()
                logger.info("Async database engine disposed successfully")
                if self.emitter is not None:
                    self.emitter.emit(LogLevelName.INFO, "Disconnected from database", target="recipebook.engine")
            finally:
                self._is_initialized = False
                self.async_engine = None
                self.async_session_factory = None
