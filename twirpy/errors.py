"""
Twirp error model.

Provides:
- The fixed set of Twirp error codes and their HTTP status mapping
- TwirpError, an exception that is also an immutable error value
- JSON wire encoding of errors ({"code", "msg", "meta"})
"""

from __future__ import annotations

import json
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ErrorCode(str, Enum):
    """Canonical Twirp error codes."""

    CANCELED = "canceled"
    UNKNOWN = "unknown"
    INVALID_ARGUMENT = "invalid_argument"
    MALFORMED = "malformed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NOT_FOUND = "not_found"
    BAD_ROUTE = "bad_route"
    ALREADY_EXISTS = "already_exists"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHENTICATED = "unauthenticated"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    FAILED_PRECONDITION = "failed_precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out_of_range"
    UNIMPLEMENTED = "unimplemented"
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"
    DATA_LOSS = "data_loss"

    @classmethod
    def parse(cls, value: Any) -> ErrorCode:
        """Parse a wire code; anything unrecognized becomes UNKNOWN."""
        if isinstance(value, ErrorCode):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.UNKNOWN


_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.CANCELED: 408,
    ErrorCode.UNKNOWN: 500,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.MALFORMED: 400,
    ErrorCode.DEADLINE_EXCEEDED: 408,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.BAD_ROUTE: 404,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.RESOURCE_EXHAUSTED: 403,
    ErrorCode.FAILED_PRECONDITION: 412,
    ErrorCode.ABORTED: 409,
    ErrorCode.OUT_OF_RANGE: 400,
    ErrorCode.UNIMPLEMENTED: 501,
    ErrorCode.INTERNAL: 500,
    ErrorCode.UNAVAILABLE: 503,
    ErrorCode.DATA_LOSS: 500,
}


def http_status(code: ErrorCode | str) -> int:
    """Map an error code to its canonical HTTP status."""
    return _HTTP_STATUS[ErrorCode.parse(code)]


class TwirpError(Exception):
    """Structured Twirp error. Handlers may return it or raise it."""

    def __init__(
        self,
        code: ErrorCode | str,
        msg: str,
        meta: Mapping[str, Any] | None = None,
    ):
        super().__init__(msg)
        self._code = ErrorCode.parse(code)
        self._msg = str(msg)
        self._meta = MappingProxyType({str(k): str(v) for k, v in (meta or {}).items()})

    @property
    def code(self) -> ErrorCode:
        return self._code

    @property
    def msg(self) -> str:
        return self._msg

    @property
    def meta(self) -> Mapping[str, str]:
        return self._meta

    @property
    def status_code(self) -> int:
        return _HTTP_STATUS[self._code]

    @classmethod
    def new(cls, code: ErrorCode | str, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(code, msg, meta)

    def with_meta(self, **pairs: Any) -> TwirpError:
        """Return a copy with extra meta entries."""
        merged = dict(self._meta)
        merged.update(pairs)
        return type(self)(self._code, self._msg, merged)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self._code.value, "msg": self._msg, "meta": dict(self._meta)}

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Any) -> TwirpError:
        """Build an error from a decoded wire payload.

        Raises ValueError when the payload is not a Twirp error object.
        """
        if not isinstance(data, dict) or not isinstance(data.get("code"), str):
            raise ValueError("payload is not a twirp error")
        msg = data.get("msg")
        meta = data.get("meta")
        return cls(
            ErrorCode.parse(data["code"]),
            msg if isinstance(msg, str) else "",
            meta if isinstance(meta, dict) else None,
        )

    @classmethod
    def from_json(cls, raw: bytes | str) -> TwirpError:
        return cls.from_dict(json.loads(raw))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TwirpError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self._code, self._msg))

    def __repr__(self) -> str:
        return f"TwirpError(code={self._code.value!r}, msg={self._msg!r}, meta={dict(self._meta)!r})"

    def __str__(self) -> str:
        return f"[{self._code.value}] {self._msg}"

    # One constructor per code, e.g. TwirpError.invalid_argument("bad size").

    @classmethod
    def canceled(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.CANCELED, msg, meta)

    @classmethod
    def unknown(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.UNKNOWN, msg, meta)

    @classmethod
    def invalid_argument(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.INVALID_ARGUMENT, msg, meta)

    @classmethod
    def malformed(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.MALFORMED, msg, meta)

    @classmethod
    def deadline_exceeded(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.DEADLINE_EXCEEDED, msg, meta)

    @classmethod
    def not_found(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.NOT_FOUND, msg, meta)

    @classmethod
    def bad_route(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.BAD_ROUTE, msg, meta)

    @classmethod
    def already_exists(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.ALREADY_EXISTS, msg, meta)

    @classmethod
    def permission_denied(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.PERMISSION_DENIED, msg, meta)

    @classmethod
    def unauthenticated(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.UNAUTHENTICATED, msg, meta)

    @classmethod
    def resource_exhausted(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.RESOURCE_EXHAUSTED, msg, meta)

    @classmethod
    def failed_precondition(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.FAILED_PRECONDITION, msg, meta)

    @classmethod
    def aborted(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.ABORTED, msg, meta)

    @classmethod
    def out_of_range(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.OUT_OF_RANGE, msg, meta)

    @classmethod
    def unimplemented(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.UNIMPLEMENTED, msg, meta)

    @classmethod
    def internal(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.INTERNAL, msg, meta)

    @classmethod
    def unavailable(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.UNAVAILABLE, msg, meta)

    @classmethod
    def data_loss(cls, msg: str, meta: Mapping[str, Any] | None = None) -> TwirpError:
        return cls(ErrorCode.DATA_LOSS, msg, meta)


class ServiceConfigError(Exception):
    """Raised at startup for invalid service definitions or registrations."""
