"""
ApiCommons — Transaction Scope Middleware
==========================================

What:  Opens a transaction around endpoints that declared one, commits it when
       the endpoint completes and rolls it back when the endpoint raises.
How:   Two cooperating halves, because the endpoint is only known once
       routing has run:
         - TransactionScopeMiddleware (before routing) puts a
           RequestTransaction slot on request.state, then renders or
           re-raises whatever failure comes back.
         - TransactionalRoute (after routing) looks up the declaration of
           its own endpoint and, if there is one, opens a container scope,
           resolves the declared resource context, begins, runs the route
           handler, commits or rolls back, and disposes the scope.
Who:   Registered by attach_transaction_scope(), inside the error boundary.
       Routers opt in with ``APIRouter(route_class=TransactionalRoute)``;
       create_app() sets it on the app's own router.

State machine:
    no declaration ──────────────▶ passthrough (no scope, no context)
    declared ─▶ pending ─begin▶ open ─commit▶ committed
                                     └─failure▶ rolled_back

    The resource context is disposed by its container scope on every exit
    path, after the commit or rollback and before the failure (if any)
    leaves the route.

Failure handling:
    - Any exception raised by the route handler rolls back, HTTPException
      included, even though FastAPI later turns that one into a response.
    - The failure that triggered the rollback is the one surfaced. A failing
      rollback or dispose is logged and attached to it as a note and as
      ``rollback_error``.
    - With a failure renderer configured, it receives
      (container, request, failure) after teardown and its response is
      returned; without one, the original failure is re-raised unchanged.
    - Cancellation rolls back and disposes inside a shielded cancel scope and
      is then re-raised; it is never rendered.
    - A declared endpoint served by a route that is not a TransactionalRoute
      fails with ConfigurationError instead of running untransacted.
"""

import logging
from enum import Enum
from typing import Any, Callable, Coroutine, Dict, Hashable, Optional

import anyio
from fastapi.routing import APIRoute
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from apicommons.container import ResourceContext, ServiceContainer, ServiceScope
from apicommons.exceptions import ConfigurationError, TransactionStateError, attach_rollback_failure
from apicommons.metadata import TransactionDeclaration, TransactionRegistry
from apicommons.middleware.error_boundary import FailureRenderer
from apicommons.middleware.logging import request_id_var

logger = logging.getLogger(__name__)

RouteHandler = Callable[[Request], Coroutine[Any, Any, Response]]


class ScopeState(str, Enum):
    PENDING = "pending"
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionalScope:
    """
    One request's transaction over one resource context.

    Ends in exactly one terminal state. rollback() is a no-op unless the
    transaction is open, so it is attempted at most once.
    """

    def __init__(self, context: ResourceContext, declaration: TransactionDeclaration):
        self.context = context
        self.declaration = declaration
        self.state = ScopeState.PENDING

    async def begin(self) -> None:
        if self.state is not ScopeState.PENDING:
            raise TransactionStateError("Transaction already started", self.state.value)
        await self.context.begin_transaction()
        self.state = ScopeState.OPEN

    async def commit(self) -> None:
        if self.state is not ScopeState.OPEN:
            raise TransactionStateError("Only an open transaction can commit", self.state.value)
        await self.context.commit()
        self.state = ScopeState.COMMITTED

    async def rollback(self, failure: BaseException) -> bool:
        """Roll back after ``failure``. Returns False if nothing was open."""
        if self.state is not ScopeState.OPEN:
            return False
        self.state = ScopeState.ROLLED_BACK
        with anyio.CancelScope(shield=True):
            try:
                await self.context.rollback()
            except Exception as rollback_error:
                logger.error(
                    "[%s] Rollback failed for context %r",
                    request_id_var.get(""),
                    self.declaration.context_key,
                    exc_info=True,
                )
                attach_rollback_failure(failure, rollback_error)
        return True


class RequestTransaction:
    """
    Per-request slot shared by the middleware and TransactionalRoute.

    Created before routing; ``declaration`` and ``transaction`` stay None
    unless the routed endpoint turned out to be transactional.
    """

    def __init__(self, registry: TransactionRegistry, container: ServiceContainer):
        self.registry = registry
        self.container = container
        self.declaration: Optional[TransactionDeclaration] = None
        self.transaction: Optional[TransactionalScope] = None
        self.contexts: Dict[Hashable, ResourceContext] = {}

    async def run(
        self,
        declaration: TransactionDeclaration,
        route_handler: RouteHandler,
        request: Request,
    ) -> Response:
        """Run ``route_handler`` inside a transaction; dispose on every path."""
        self.declaration = declaration
        services = self.container.create_scope()
        try:
            response = await self._run_in_transaction(services, declaration, route_handler, request)
        except BaseException as failure:
            await services.aclose(failure)
            raise
        await services.aclose()
        return response

    async def _run_in_transaction(
        self,
        services: ServiceScope,
        declaration: TransactionDeclaration,
        route_handler: RouteHandler,
        request: Request,
    ) -> Response:
        context: ResourceContext = services.resolve(declaration.context_key)
        transaction = TransactionalScope(context, declaration)
        self.transaction = transaction
        self.contexts[declaration.context_key] = context
        try:
            await transaction.begin()
            logger.debug("[%s] Transaction opened (context=%r)", request_id_var.get(""), declaration.context_key)
            try:
                response = await route_handler(request)
                await transaction.commit()
            except BaseException as failure:
                await transaction.rollback(failure)
                logger.warning(
                    "[%s] Transaction rolled back (context=%r): %s",
                    request_id_var.get(""),
                    declaration.context_key,
                    type(failure).__name__,
                )
                raise
            logger.debug("[%s] Transaction committed (context=%r)", request_id_var.get(""), declaration.context_key)
            return response
        finally:
            self.contexts.clear()


def current_resource_context(request: Request, key: Hashable) -> ResourceContext:
    """
    Return the resource context opened for this request under ``key``.

    Raises:
        TransactionStateError: the endpoint has no open transactional scope
            for ``key``.
    """
    slot: Optional[RequestTransaction] = getattr(request.state, "transaction", None)
    context = slot.contexts.get(key) if slot is not None else None
    if context is None:
        raise TransactionStateError(
            f"No transactional scope is open for context '{key}' on this request",
            ScopeState.PENDING.value,
        )
    return context


class TransactionalRoute(APIRoute):
    """
    APIRoute whose handler runs inside the declared transaction, if any.

    The declaration is looked up for this route's own endpoint, after
    routing, so included routers and mounted apps need no extra matching.
    """

    def get_route_handler(self) -> RouteHandler:
        route_handler = super().get_route_handler()
        endpoint = self.endpoint

        async def transactional_route_handler(request: Request) -> Response:
            slot: Optional[RequestTransaction] = getattr(request.state, "transaction", None)
            if slot is None:
                return await route_handler(request)
            declaration = slot.registry.find_transaction_declaration(endpoint)
            if declaration is None:
                return await route_handler(request)
            return await slot.run(declaration, route_handler, request)

        return transactional_route_handler


class TransactionScopeMiddleware(BaseHTTPMiddleware):
    """
    Declaration-driven transaction boundary (outer half).

    Args:
        app:               Next ASGI stage
        registry:          Endpoint → declaration map (frozen at startup)
        container:         Provider of request-scoped resource contexts
        failure_renderer:  Optional (container, request, failure) → Response;
                           absent means "re-raise"
    """

    def __init__(
        self,
        app: ASGIApp,
        registry: TransactionRegistry,
        container: ServiceContainer,
        failure_renderer: Optional[FailureRenderer] = None,
    ):
        super().__init__(app)
        self.registry = registry
        self.container = container
        self.failure_renderer = failure_renderer

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # Common case: nothing is transactional
        if not len(self.registry):
            return await call_next(request)

        slot = RequestTransaction(self.registry, self.container)
        request.state.transaction = slot
        try:
            response = await call_next(request)
        except BaseException as failure:
            # Teardown already ran inside the route
            if self.failure_renderer is None or not isinstance(failure, Exception):
                raise
            logger.warning(
                "[%s] Rendering failure of transactional request %s %s: %s",
                request_id_var.get(""),
                request.method,
                request.url.path,
                failure,
            )
            return await self.failure_renderer(self.container, request, failure)

        self._ensure_route_took_part(request, slot)
        return response

    def _ensure_route_took_part(self, request: Request, slot: RequestTransaction) -> None:
        if slot.declaration is not None:
            return
        endpoint = request.scope.get("endpoint")
        if self.registry.find_transaction_declaration(endpoint) is None:
            return
        name = getattr(endpoint, "__qualname__", repr(endpoint))
        raise ConfigurationError(
            f"Endpoint '{name}' is declared transactional but its route is not a TransactionalRoute",
            context={"path": request.url.path},
        )
