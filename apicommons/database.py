"""
ApiCommons — SQLAlchemy Resource Context
=========================================

What:  Async SQLAlchemy engine/session wiring and the ResourceContext
       implementation the transaction middleware drives.
How:   ``Database`` lazily builds one engine and session factory per process.
       Each transactional request gets its own AsyncSession wrapped in a
       SqlAlchemyResourceContext: begin → session.begin(),
       commit/rollback on that transaction, dispose → session.close().
Who:   Registered in the ServiceContainer by the app factory; route handlers
       reach the session through the get_db_session dependency.
       paginate() runs a SELECT one PagedRequest page at a time.

Connection Pooling:
    pool_size / max_overflow / pool_pre_ping come from settings and are only
    passed for pooled drivers. SQLite URLs (tests, local runs) use the
    dialect's default pool.
"""

import logging
from typing import Any, Dict, Hashable, Optional

from fastapi import Request
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    AsyncSessionTransaction,
    async_sessionmaker,
    create_async_engine,
)

from apicommons.config import Settings, settings
from apicommons.container import ResourceContext
from apicommons.exceptions import TransactionStateError
from apicommons.middleware.transaction import current_resource_context
from apicommons.schemas.pagination import PagedRequest, PagedResult

logger = logging.getLogger(__name__)


def build_engine(config: Settings) -> AsyncEngine:
    options: Dict[str, Any] = {"echo": config.db_echo}
    if not config.database_url.startswith("sqlite"):
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_pre_ping=config.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(config.database_url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps loaded attributes readable after commit,
    # when the response is serialized
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class SqlAlchemyResourceContext(ResourceContext):
    """
    One AsyncSession driven through a single explicit transaction.

    The session is exclusively owned by the request that resolved this
    context; dispose() closes it and returns the connection to the pool.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._transaction: Optional[AsyncSessionTransaction] = None

    async def begin_transaction(self) -> None:
        if self._transaction is not None:
            raise TransactionStateError("Session transaction already started", "open")
        self._transaction = await self.session.begin()

    async def commit(self) -> None:
        await self._require_transaction().commit()

    async def rollback(self) -> None:
        await self._require_transaction().rollback()

    async def dispose(self) -> None:
        await self.session.close()

    def _require_transaction(self) -> AsyncSessionTransaction:
        if self._transaction is None:
            raise TransactionStateError("Session transaction was never started", "pending")
        return self._transaction


class Database:
    """
    Lazily created engine + session factory.

    Nothing connects (or imports the DB driver) until the first session is
    requested, so building the app does not need a reachable database.
    """

    def __init__(self, config: Settings = settings):
        self.config = config
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = build_engine(self.config)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = build_session_factory(self.engine)
        return self._session_factory

    def resource_context(self) -> SqlAlchemyResourceContext:
        """Container factory: a new context around a new session."""
        return SqlAlchemyResourceContext(self.session_factory())

    async def dispose(self) -> None:
        """Close all pooled connections (application shutdown)."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


def db_session_dependency(key: Hashable):
    """Build a FastAPI dependency returning the session opened for ``key``."""

    async def get_session(request: Request) -> AsyncSession:
        context = current_resource_context(request, key)
        return context.session  # type: ignore[attr-defined]

    return get_session


# Dependency for endpoints declared with the default context key
get_db_session = db_session_dependency(settings.default_context_key)


async def paginate(session: AsyncSession, statement: Select, request: PagedRequest) -> PagedResult:
    """
    Run ``statement`` one page at a time.

    Issues a COUNT over the unordered statement, then the page itself with
    OFFSET/LIMIT taken from the normalized request. Rows are returned as
    scalars, so select one entity or one column.
    """
    count_statement = select(func.count()).select_from(statement.order_by(None).subquery())
    total_count = (await session.execute(count_statement)).scalar_one()
    if total_count == 0:
        return PagedResult.empty(request)

    page = await session.execute(statement.offset(request.skip).limit(request.page_size))
    return PagedResult.from_items(page.scalars().all(), total_count, request)
