"""
ApiCommons — Exception Hierarchy
=================================

What:  Application-specific exceptions raised by the result model, the
       service container and the transaction middleware.
How:   Each exception carries a user-facing message, an optional context dict
       (logged, never rendered) and the HTTP status the default failure
       renderer uses for it.
Who:   Raised by library code and by application services; rendered by the
       error boundary.

Exception Hierarchy:
    ApiCommonsError (base)            → 500
    ├── ValidationError               → 400 (client can fix the input)
    ├── NotFoundError                 → 404
    ├── ResultStateError              → 500 (wrong branch read on a Result)
    ├── ConfigurationError            → 500 (pipeline wiring mistake)
    ├── ResourceResolutionError       → 500 (unknown container key)
    └── TransactionStateError         → 500 (illegal commit/rollback order)

Rollback failures are not a class of their own: they are attached to the
failure that caused the rollback (see attach_rollback_failure).
"""

from typing import Any, Dict, Optional


class ApiCommonsError(Exception):
    """
    Base exception for all ApiCommons errors.

    Attributes:
        message:      User-facing error description (safe to render)
        context:      Additional debug info (logged but NOT rendered)
        status_code:  HTTP status used by the default failure renderer
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ApiCommonsError):
    """
    Raised (or returned inside a Result failure) when input is invalid.

    HTTP: 400 Bad Request
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(ApiCommonsError):
    """
    Raised (or returned inside a Result failure) when a record is missing.

    HTTP: 404 Not Found
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ResultStateError(ApiCommonsError):
    """Raised when the value of a Failure or the error of a Success is read."""

    def __init__(self, message: str = "Result accessed on the wrong branch"):
        super().__init__(message=message)


class ConfigurationError(ApiCommonsError):
    """
    Raised when the pipeline is wired incorrectly.

    Examples: a second transaction declaration for one endpoint, registering
    after the registry was frozen, attaching the error boundary without a
    renderer.
    """

    def __init__(
        self,
        message: str = "Invalid pipeline configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ResourceResolutionError(ApiCommonsError):
    """Raised when a container scope is asked for a key nobody registered."""

    def __init__(self, key: Any):
        super().__init__(
            message=f"No resource context is registered under key '{key}'",
            context={"key": repr(key)},
        )
        self.key = key


class TransactionStateError(ApiCommonsError):
    """Raised when a transactional scope is driven out of order."""

    def __init__(self, message: str, state: str):
        super().__init__(message=message, context={"state": state})
        self.state = state


# ── Rollback failure reporting ────────────────────────────────────────────
# The failure that triggered a rollback is always the one surfaced. A
# rollback (or dispose) failure rides along on it as a note and attribute.

def attach_rollback_failure(
    failure: BaseException, rollback_error: BaseException, stage: str = "rollback"
) -> None:
    """
    Record a secondary teardown failure on the primary failure.

    The first teardown failure wins the ``rollback_error`` attribute; every
    one of them is added as a note.
    """
    failure.add_note(
        f"Transaction {stage} also failed: {type(rollback_error).__name__}: {rollback_error}"
    )
    if getattr(failure, "rollback_error", None) is None:
        failure.rollback_error = rollback_error  # type: ignore[attr-defined]


def rollback_failure_of(failure: BaseException) -> Optional[BaseException]:
    """Return the rollback failure attached to ``failure``, if any."""
    return getattr(failure, "rollback_error", None)


def failure_message(error: Any) -> str:
    """
    Human-readable message for an error payload.

    Project exceptions expose ``.message``; other exceptions fall back to
    ``str(error)`` and finally to the class name so the text is never empty.
    """
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(error)
    if text:
        return text
    return type(error).__name__
