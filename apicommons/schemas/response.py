"""
ApiCommons — Response Envelope Schema
======================================

What:  The uniform wire envelope every endpoint returns, success or failure.
How:   A generic pydantic model serialized with camelCase ``statusCode``:

           {
               "data": <T or null>,
               "message": ["OK"],
               "error": false,
               "statusCode": 200
           }

       ``statusCode`` is mirrored onto the HTTP status line by
       envelope_response().

Mapping from a Result (applied once per request):
    Success(v), default          → 200, data=v, error=false, ["OK"]
    Success(v), success(c, v, m) → c,   data=v, error=false, [m]
    Failure(ex), default         → 400, data=null, error=true, [message of ex]
    Failure(ex), fail(c, m, d)   → c,   data=d, error=true, [m]

An explicit status code or message always overrides the defaults.
"""

from http import HTTPStatus
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse

from apicommons.exceptions import failure_message
from apicommons.result import Result

T = TypeVar("T")

DEFAULT_SUCCESS_MESSAGE = "OK"


class ApiResponse(BaseModel, Generic[T]):
    """
    Success/failure container sent to API clients.

    Invariants:
        - ``error`` is true only for envelopes built by ``fail`` /
          ``from_exception`` / a failed Result.
        - ``status_code`` has no default: every factory sets it.
        - ``message`` keeps insertion order.
    """

    model_config = ConfigDict(populate_by_name=True)

    data: Optional[T] = Field(default=None, description="Payload (null when absent)")
    message: List[str] = Field(default_factory=list, description="Ordered messages")
    error: bool = Field(default=False, description="True for failure envelopes")
    status_code: int = Field(
        alias="statusCode",
        ge=100,
        le=599,
        description="HTTP status code, mirrored on the response status line",
    )

    # ── Success factories ─────────────────────────────────────────────────

    @classmethod
    def success(
        cls,
        status_code: int,
        data: Optional[T] = None,
        message: Optional[str] = None,
    ) -> "ApiResponse[T]":
        """
        Successful envelope with an explicit status code.

        ``success(204)`` without data or message is the only way to build an
        envelope with an empty message list.
        """
        return cls(
            data=data,
            message=[message] if message is not None else [],
            error=False,
            status_code=int(status_code),
        )

    @classmethod
    def from_value(cls, data: Optional[T]) -> "ApiResponse[T]":
        """Default success conversion: 200 and ``["OK"]``."""
        return cls.success(HTTPStatus.OK, data, DEFAULT_SUCCESS_MESSAGE)

    # ── Failure factories ─────────────────────────────────────────────────

    @classmethod
    def fail(
        cls,
        status_code: int,
        message: str,
        data: Optional[T] = None,
    ) -> "ApiResponse[T]":
        return cls(
            data=data,
            message=[message],
            error=True,
            status_code=int(status_code),
        )

    @classmethod
    def from_exception(cls, error: Any) -> "ApiResponse[T]":
        """Default failure conversion: 400 with the error's message."""
        return cls.fail(HTTPStatus.BAD_REQUEST, failure_message(error))

    # ── Result conversion ─────────────────────────────────────────────────

    @classmethod
    def from_result(cls, result: Result[T, Any]) -> "ApiResponse[T]":
        return result.match(cls.from_value, cls.from_exception)

    # ── Helpers ───────────────────────────────────────────────────────────

    def add_message(self, message: str) -> "ApiResponse[T]":
        self.message.append(message)
        return self

    def to_wire(self) -> Dict[str, Any]:
        """JSON-compatible dict using the wire field names."""
        return self.model_dump(mode="json", by_alias=True)


def envelope_response(envelope: ApiResponse[Any], headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """Render an envelope as a JSONResponse whose status mirrors statusCode."""
    return JSONResponse(
        status_code=envelope.status_code,
        content=envelope.to_wire(),
        headers=headers,
    )


def respond(result: Result[Any, Any]) -> JSONResponse:
    """Shortcut for route handlers: Result → envelope → JSONResponse."""
    return envelope_response(ApiResponse.from_result(result))
