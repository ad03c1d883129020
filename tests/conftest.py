"""
ApiCommons — Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures for the test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all
       tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── spy_provider:     Container factory recording every resource context
    ├── registry:         Empty TransactionRegistry
    ├── container:        ServiceContainer with spy_provider under "default"
    ├── demo_router:      Routes exercising each pipeline path
    ├── client_factory:   HTTPX AsyncClient bound to a given app
    └── sqlite_settings:  Settings pointing at a temporary SQLite file
"""

import os
from contextlib import asynccontextmanager
from typing import List, Optional

# Override settings for testing BEFORE any app imports
os.environ["APICOMMONS_DATABASE_URL"] = "sqlite+aiosqlite:///./apicommons_test.db"
os.environ["APICOMMONS_LOG_LEVEL"] = "WARNING"

import anyio
import pytest
from fastapi import APIRouter, HTTPException, Request
from httpx import ASGITransport, AsyncClient

from apicommons.config import Settings
from apicommons.container import ResourceContext, ServiceContainer
from apicommons.exceptions import ValidationError
from apicommons.metadata import TransactionRegistry
from apicommons.middleware.transaction import TransactionalRoute, current_resource_context
from apicommons.result import Result
from apicommons.schemas.response import ApiResponse, envelope_response, respond


class SpyResourceContext(ResourceContext):
    """
    Records every lifecycle call. Each operation yields to the event loop
    once, so cancellation shielding is actually exercised.
    """

    def __init__(
        self,
        fail_commit: bool = False,
        fail_rollback: bool = False,
        fail_dispose: bool = False,
    ):
        self.calls: List[str] = []
        self.fail_commit = fail_commit
        self.fail_rollback = fail_rollback
        self.fail_dispose = fail_dispose

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def begin_transaction(self) -> None:
        await anyio.sleep(0)
        self.calls.append("begin")

    async def commit(self) -> None:
        await anyio.sleep(0)
        self.calls.append("commit")
        if self.fail_commit:
            raise RuntimeError("commit failed")

    async def rollback(self) -> None:
        await anyio.sleep(0)
        self.calls.append("rollback")
        if self.fail_rollback:
            raise RuntimeError("rollback failed")

    async def dispose(self) -> None:
        await anyio.sleep(0)
        self.calls.append("dispose")
        if self.fail_dispose:
            raise RuntimeError("dispose failed")


class SpyProvider:
    """Container factory that keeps every context it created."""

    def __init__(self, **failures):
        self.failures = failures
        self.created: List[SpyResourceContext] = []

    def __call__(self) -> SpyResourceContext:
        context = SpyResourceContext(**self.failures)
        self.created.append(context)
        return context

    @property
    def last(self) -> Optional[SpyResourceContext]:
        return self.created[-1] if self.created else None


@pytest.fixture
def spy_provider():
    return SpyProvider()


@pytest.fixture
def registry():
    return TransactionRegistry()


@pytest.fixture
def container(spy_provider):
    services = ServiceContainer()
    services.register("default", spy_provider)
    return services


@pytest.fixture
def demo_router(registry):
    """
    Routes covering each pipeline path.

    GET  /plain            no declaration
    POST /tx/ok            declared, succeeds (201)
    POST /tx/boom          declared, raises RuntimeError("boom")
    GET  /tx/domain        declared, returns a failed Result (400 envelope)
    POST /tx/missing-key   declared against an unregistered container key
    POST /tx/http          declared, raises HTTPException(404) after writing
    POST /tx/slow          declared, sleeps until cancelled
    """
    router = APIRouter(route_class=TransactionalRoute)

    @router.get("/plain")
    async def plain():
        return respond(Result.success("plain"))

    @router.post("/tx/ok")
    @registry.transactional("default")
    async def tx_ok(request: Request):
        context = current_resource_context(request, "default")
        context.calls.append("handler")
        return envelope_response(ApiResponse.success(201, {"saved": True}, "Created"))

    @router.post("/tx/boom")
    @registry.transactional("default")
    async def tx_boom(request: Request):
        current_resource_context(request, "default").calls.append("handler")
        raise RuntimeError("boom")

    @router.get("/tx/domain")
    @registry.transactional("default")
    async def tx_domain():
        return respond(Result.failure(ValidationError("name is required", field="name")))

    @router.post("/tx/missing-key")
    @registry.transactional("missing")
    async def tx_missing_key():
        return respond(Result.success(None))

    @router.post("/tx/http")
    @registry.transactional("default")
    async def tx_http(request: Request):
        current_resource_context(request, "default").calls.append("handler")
        raise HTTPException(status_code=404, detail="gone")

    @router.post("/tx/slow")
    @registry.transactional("default")
    async def tx_slow(request: Request):
        current_resource_context(request, "default").calls.append("handler")
        await anyio.sleep(30)
        return respond(Result.success(None))

    return router


@pytest.fixture
def client_factory():
    """
    Usage:
        async with client_factory(app) as client:
            response = await client.get("/plain")
    """

    @asynccontextmanager
    async def factory(app, raise_app_exceptions: bool = True):
        transport = ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    return factory


@pytest.fixture
def sqlite_settings(tmp_path):
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'apicommons.db'}")
