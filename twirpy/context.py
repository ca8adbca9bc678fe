"""Request-scoped context, cancellation signal and the one-shot response guard."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Awaitable, Callable, Generic, Mapping, TypeVar

T = TypeVar("T")


class CancellationSignal:
    """Irreversible cancellation flag.

    One writer (the transport, or the caller on the client side) fires it;
    any number of readers poll `is_set()` or await `wait()`. Fire it from the
    event loop thread that the readers await on.
    """

    __slots__ = ("_event", "reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def fire(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class RequestContext:
    """
    Mutable, request-scoped bag of values plus headers, deadline and cancellation.

    The dispatcher fills in package/service/method before the handler runs.
    On the client side the same object carries outgoing headers, a deadline
    and the caller's cancellation.
    """

    def __init__(
        self,
        *,
        headers: Mapping[str, str] | None = None,
        deadline: float | None = None,
        values: Mapping[str, Any] | None = None,
        cancellation: CancellationSignal | None = None,
    ):
        self.headers: dict[str, str] = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        self.deadline = deadline
        self.values: dict[str, Any] = dict(values or {})
        self.cancellation = cancellation or CancellationSignal()
        self.package: str | None = None
        self.service_name: str | None = None
        self.method_name: str | None = None

    @classmethod
    def with_timeout(cls, seconds: float, **kwargs: Any) -> RequestContext:
        """Context whose deadline is `seconds` from now."""
        return cls(deadline=time.time() + seconds, **kwargs)

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.values[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def cancel(self, reason: str | None = None) -> None:
        self.cancellation.fire(reason)

    @property
    def cancelled(self) -> bool:
        return self.cancellation.is_set()

    async def wait_cancelled(self) -> None:
        await self.cancellation.wait()

    def time_remaining(self) -> float | None:
        """Seconds until the deadline (may be negative), or None without one."""
        if self.deadline is None:
            return None
        return self.deadline - time.time()

    def __repr__(self) -> str:
        return (
            f"RequestContext(service={self.service_name!r}, method={self.method_name!r}, "
            f"cancelled={self.cancelled})"
        )


class ResponseGuard(Generic[T]):
    """One-shot response slot: the first write wins, later writes are no-ops."""

    def __init__(self, sink: Callable[[T], Awaitable[None]] | None = None):
        self._lock = threading.Lock()
        self._claimed = False
        self._value: T | None = None
        self._sink = sink
        self._written = asyncio.Event()

    @property
    def claimed(self) -> bool:
        """True once a writer owns the slot, even while its sink is still running."""
        return self._claimed

    @property
    def written(self) -> bool:
        return self._written.is_set()

    @property
    def value(self) -> T | None:
        return self._value

    async def write(self, value: T) -> bool:
        """Claim the slot and deliver `value`; returns False if already claimed."""
        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            self._value = value
        try:
            if self._sink is not None:
                await self._sink(value)
        finally:
            self._written.set()
        return True

    async def wait(self) -> T:
        await self._written.wait()
        return self._value  # type: ignore[return-value]
