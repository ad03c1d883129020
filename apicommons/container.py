"""
ApiCommons — Resource Contexts and the Scoped Service Container
================================================================

What:  The contract a transactional resource (a unit of work such as a
       database session) must implement, and the container that hands out
       request-scoped instances of it.
How:   Applications register a factory per key at startup. The transaction
       middleware opens one ServiceScope per transactional request, resolves
       the declared key from it and lets ``async with`` dispose every
       resolved instance when the request ends, on every exit path.

Lifecycle of a scoped instance:
    create_scope() → resolve(key) (factory called once per scope)
    → ... request ... → scope exit → dispose() (reverse resolution order)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Hashable, List, Optional

import anyio

from apicommons.exceptions import (
    ConfigurationError,
    ResourceResolutionError,
    attach_rollback_failure,
)

logger = logging.getLogger(__name__)


class ResourceContext(ABC):
    """
    Abstract unit of work that can run inside one transaction.

    Contract:
        - begin_transaction() is called once, right after resolution
        - exactly one of commit() / rollback() follows
        - dispose() is called by the owning scope, whatever happened before
        - an instance belongs to a single request and is never shared

    Implementations:
        - SqlAlchemyResourceContext (apicommons.database)
    """

    @abstractmethod
    async def begin_transaction(self) -> None:
        ...

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...

    @abstractmethod
    async def dispose(self) -> None:
        ...


ResourceFactory = Callable[[], Any]


class ServiceScope:
    """
    One request's view of the container.

    Instances resolved from a scope are cached for the scope's lifetime and
    disposed when the scope exits. Disposal runs shielded from cancellation.
    """

    def __init__(self, factories: Dict[Hashable, ResourceFactory]):
        self._factories = factories
        self._instances: Dict[Hashable, Any] = {}
        self._order: List[Hashable] = []
        self._closed = False

    def resolve(self, key: Hashable) -> Any:
        if self._closed:
            raise ConfigurationError(
                "Cannot resolve from a disposed scope", context={"key": repr(key)}
            )
        if key in self._instances:
            return self._instances[key]
        factory = self._factories.get(key)
        if factory is None:
            raise ResourceResolutionError(key)
        instance = factory()
        self._instances[key] = instance
        self._order.append(key)
        return instance

    async def __aenter__(self) -> "ServiceScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose(exc)

    async def aclose(self, primary: Optional[BaseException] = None) -> None:
        """
        Dispose all resolved instances in reverse resolution order.

        With a primary failure in flight, disposal errors are logged and
        attached to it. On a clean exit the first disposal error is raised
        after every instance had its turn.
        """
        if self._closed:
            return
        self._closed = True
        first_error: Optional[BaseException] = None

        with anyio.CancelScope(shield=True):
            for key in reversed(self._order):
                instance = self._instances[key]
                dispose = getattr(instance, "dispose", None)
                if dispose is None:
                    continue
                try:
                    await dispose()
                except Exception as dispose_error:
                    logger.error(
                        "Failed to dispose scoped resource '%s'", key, exc_info=True
                    )
                    if primary is not None:
                        attach_rollback_failure(primary, dispose_error, stage="dispose")
                    elif first_error is None:
                        first_error = dispose_error

        self._instances.clear()
        self._order.clear()

        if first_error is not None:
            raise first_error


class ServiceContainer:
    """
    Process-wide registry of resource factories keyed by name (or type).

    Populated at startup; request handling only reads it through
    create_scope().
    """

    def __init__(self) -> None:
        self._factories: Dict[Hashable, ResourceFactory] = {}

    def register(self, key: Hashable, factory: ResourceFactory) -> None:
        if key in self._factories:
            raise ConfigurationError(
                f"A factory is already registered under key '{key}'",
                context={"key": repr(key)},
            )
        self._factories[key] = factory

    def is_registered(self, key: Hashable) -> bool:
        return key in self._factories

    def create_scope(self) -> ServiceScope:
        return ServiceScope(self._factories)
