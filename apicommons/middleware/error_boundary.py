"""
ApiCommons — Error Boundary Middleware
=======================================

What:  Outermost pipeline stage. Any exception raised below it (including
       failures re-raised by the transaction middleware) is handed to a
       failure renderer instead of reaching the server unrendered.
How:   try/except around call_next; the configured renderer receives
       (container, request, failure) and returns the response to send.
Who:   Registered by attach_error_boundary() / use_api_commons().

Guarantee:
    No Exception crosses this stage. If the renderer itself raises, both
    failures are logged and a minimal 500 envelope is returned.
    Cancellation (BaseException) is not an Exception and passes through.
"""

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from apicommons.config import settings
from apicommons.exceptions import ApiCommonsError, ConfigurationError, failure_message
from apicommons.middleware.logging import request_id_var
from apicommons.schemas.response import ApiResponse, envelope_response

if TYPE_CHECKING:
    from apicommons.container import ServiceContainer

logger = logging.getLogger(__name__)

FailureRenderer = Callable[["ServiceContainer", Request, Exception], Awaitable[Response]]

GENERIC_FAILURE_MESSAGE = "An unexpected error occurred. Please try again or contact support."


def make_failure_renderer(expose_details: Optional[bool] = None) -> FailureRenderer:
    """
    Build the default renderer: failure → ApiResponse envelope.

    Status code:
        ApiCommonsError subclasses → their ``status_code``
        anything else              → 500
    Message:
        ApiCommonsError subclasses → their user-facing ``message``
        anything else              → the exception text when
                                     ``expose_details`` is on, a generic
                                     message otherwise
    Data:
        {"path": <request path>, "request_id": <correlation id>}
    """

    async def render_failure_envelope(container, request: Request, failure: Exception) -> Response:
        rid = request_id_var.get("")
        show_details = settings.expose_error_details if expose_details is None else expose_details

        if isinstance(failure, ApiCommonsError):
            status_code = failure.status_code
            message = failure.message
        else:
            status_code = HTTPStatus.INTERNAL_SERVER_ERROR
            message = failure_message(failure) if show_details else GENERIC_FAILURE_MESSAGE

        if status_code >= 500:
            logger.error(
                "[%s] Unhandled error on %s %s: %s",
                rid,
                request.method,
                request.url.path,
                failure,
                exc_info=failure,
            )
        else:
            logger.warning("[%s] %s on %s: %s", rid, type(failure).__name__, request.url.path, failure)

        envelope = ApiResponse.fail(
            status_code,
            message,
            {"path": request.url.path, "request_id": rid},
        )
        return envelope_response(envelope)

    return render_failure_envelope


render_failure_envelope = make_failure_renderer()


class ErrorBoundaryMiddleware(BaseHTTPMiddleware):
    """
    Converts every propagated Exception into a rendered response.

    Args:
        app:               Next ASGI stage
        failure_renderer:  (container, request, failure) → Response, required
        container:         Passed through to the renderer as service context
    """

    def __init__(
        self,
        app: ASGIApp,
        failure_renderer: FailureRenderer,
        container: Optional["ServiceContainer"] = None,
    ):
        if failure_renderer is None:
            raise ConfigurationError("ErrorBoundaryMiddleware requires a failure renderer")
        super().__init__(app)
        self.failure_renderer = failure_renderer
        self.container = container

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as failure:
            return await self._render(request, failure)

    async def _render(self, request: Request, failure: Exception) -> Response:
        try:
            return await self.failure_renderer(self.container, request, failure)
        except Exception as render_error:
            rid = request_id_var.get("")
            logger.error("[%s] Original failure: %s", rid, failure, exc_info=failure)
            logger.error("[%s] Failure renderer raised", rid, exc_info=render_error)
            return envelope_response(
                ApiResponse.fail(HTTPStatus.INTERNAL_SERVER_ERROR, GENERIC_FAILURE_MESSAGE)
            )
