"""
ApiCommons — Endpoint Transaction Metadata
===========================================

What:  The startup-time map from endpoint callables to their transaction
       declaration, and the per-request lookup against it.
How:   Endpoints are registered explicitly (directly or through the
       ``transactional`` decorator) before the app starts serving. The
       registry is frozen in the app lifespan; request handling only reads
       it, so no locking is needed.

Usage:
    registry = TransactionRegistry()

    router = APIRouter(route_class=TransactionalRoute)

    @router.post("/categories")
    @registry.transactional("default")
    async def create_category(session: AsyncSession = Depends(get_db_session)):
        ...

Per request, TransactionalRoute asks the registry for the declaration of
the endpoint routing selected (find_transaction_declaration).
"""

import logging
from typing import Any, Callable, Dict, Hashable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from apicommons.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class TransactionDeclaration(BaseModel):
    """Per-endpoint metadata naming the resource context to open."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    context_key: Hashable = Field(description="Container key of the resource context")


class TransactionRegistry:
    """
    Endpoint → TransactionDeclaration map (at most one per endpoint).

    Writable during startup, read-only after freeze().
    """

    def __init__(self) -> None:
        self._declarations: Dict[Callable[..., Any], TransactionDeclaration] = {}
        self._frozen = False

    def register(self, endpoint: Callable[..., Any], declaration: TransactionDeclaration) -> None:
        if self._frozen:
            raise ConfigurationError(
                "Transaction registry is frozen; register endpoints before startup",
                context={"endpoint": getattr(endpoint, "__qualname__", repr(endpoint))},
            )
        if endpoint in self._declarations:
            raise ConfigurationError(
                "Endpoint already carries a transaction declaration",
                context={"endpoint": getattr(endpoint, "__qualname__", repr(endpoint))},
            )
        self._declarations[endpoint] = declaration
        logger.debug(
            "Registered transactional endpoint %s (context=%r)",
            getattr(endpoint, "__qualname__", endpoint),
            declaration.context_key,
        )

    def transactional(self, context_key: Hashable) -> Callable[[F], F]:
        """Decorator form of register(); returns the endpoint unchanged."""

        def decorator(endpoint: F) -> F:
            self.register(endpoint, TransactionDeclaration(context_key=context_key))
            return endpoint

        return decorator

    def find_transaction_declaration(
        self, endpoint: Optional[Callable[..., Any]]
    ) -> Optional[TransactionDeclaration]:
        if endpoint is None:
            return None
        return self._declarations.get(endpoint)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._declarations)

    def __contains__(self, endpoint: object) -> bool:
        return endpoint in self._declarations
