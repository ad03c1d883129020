"""
ApiCommons — Result (Success-or-Failure Outcome)
=================================================

What:  An immutable two-state value: either Success(value) or Failure(error).
Why:   Domain failures (invalid input, missing record) are expected outcomes,
       not crashes. Services return them inside a Result and the handler
       layer renders them through Response.from_result().
How:   The state is stored as an explicit flag. A success may carry None, an
       empty string or an empty list; only Result.failure() produces a
       failure.

Consumption:
    Every fold takes both branches as mandatory positional arguments:

        result.match(on_success, on_failure)              -> R
        await result.match_async(on_success, on_failure)  -> R
        result.handle(on_success, on_failure)             -> None
        await result.handle_async(on_success, on_failure) -> None

    Exactly one branch is called. The async variants only create and await
    the awaitable of the chosen branch.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from apicommons.exceptions import ResultStateError

V = TypeVar("V")
E = TypeVar("E")
R = TypeVar("R")


@dataclass(frozen=True)
class Result(Generic[V, E]):
    """
    Success-or-failure outcome of a computation.

    Build instances with ``Result.success``, ``Result.failure``,
    ``Result.from_value`` or ``Result.capture``; the raw constructor is an
    implementation detail.
    """

    _is_success: bool
    _value: Any = field(default=None, repr=False)
    _error: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        # A Result never carries both a value and an error
        if self._is_success and self._error is not None:
            raise ResultStateError("A success cannot carry an error")
        if not self._is_success and self._value is not None:
            raise ResultStateError("A failure cannot carry a value")

    # ── Constructors ──────────────────────────────────────────────────────

    @classmethod
    def success(cls, value: V) -> "Result[V, E]":
        return cls(_is_success=True, _value=value)

    @classmethod
    def failure(cls, error: E) -> "Result[V, E]":
        return cls(_is_success=False, _error=error)

    @classmethod
    def from_value(cls, value: V) -> "Result[V, E]":
        """Wrap a plain value. Always a success, falsy values included."""
        return cls.success(value)

    @classmethod
    def capture(cls, func: Callable[..., V], *args: Any, **kwargs: Any) -> "Result[V, Exception]":
        """
        Run ``func`` and capture a raised ``Exception`` as a failure.

        BaseException subclasses that are not Exceptions (cancellation,
        KeyboardInterrupt, SystemExit) propagate unchanged.
        """
        try:
            return cls.success(func(*args, **kwargs))
        except Exception as exc:
            return cls.failure(exc)

    @classmethod
    async def capture_async(
        cls, func: Callable[..., Awaitable[V]], *args: Any, **kwargs: Any
    ) -> "Result[V, Exception]":
        """Async counterpart of :meth:`capture`."""
        try:
            return cls.success(await func(*args, **kwargs))
        except Exception as exc:
            return cls.failure(exc)

    # ── State access ──────────────────────────────────────────────────────

    @property
    def is_success(self) -> bool:
        return self._is_success

    @property
    def is_failure(self) -> bool:
        return not self._is_success

    @property
    def value(self) -> V:
        if not self._is_success:
            raise ResultStateError("Cannot read the value of a failed Result")
        return self._value

    @property
    def error(self) -> E:
        if self._is_success:
            raise ResultStateError("Cannot read the error of a successful Result")
        return self._error

    def unwrap_or(self, default: V) -> V:
        return self._value if self._is_success else default

    # ── Folds ─────────────────────────────────────────────────────────────

    def match(self, on_success: Callable[[V], R], on_failure: Callable[[E], R]) -> R:
        if self._is_success:
            return on_success(self._value)
        return on_failure(self._error)

    async def match_async(
        self,
        on_success: Callable[[V], Awaitable[R]],
        on_failure: Callable[[E], Awaitable[R]],
    ) -> R:
        if self._is_success:
            return await on_success(self._value)
        return await on_failure(self._error)

    def handle(self, on_success: Callable[[V], Any], on_failure: Callable[[E], Any]) -> None:
        if self._is_success:
            on_success(self._value)
        else:
            on_failure(self._error)

    async def handle_async(
        self,
        on_success: Callable[[V], Awaitable[Any]],
        on_failure: Callable[[E], Awaitable[Any]],
    ) -> None:
        if self._is_success:
            await on_success(self._value)
        else:
            await on_failure(self._error)

    def __repr__(self) -> str:
        if self._is_success:
            return f"Success({self._value!r})"
        return f"Failure({self._error!r})"
