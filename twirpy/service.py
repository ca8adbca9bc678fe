"""
Service definitions and the route registry.

A ServiceDefinition is what the code generator emits for one protobuf
service. Routes are computed once, when the definition is built, and the
registry resolves them with an exact dictionary lookup.
"""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping

from google.protobuf.message import Message

from twirpy.errors import ServiceConfigError, TwirpError

HandlerResult = Message | TwirpError
Handler = Callable[[Any, Message], HandlerResult | Awaitable[HandlerResult]]


@dataclass(frozen=True, slots=True)
class MethodDefinition:
    """One RPC method of a service."""

    name: str
    request_type: type[Message]
    response_type: type[Message]
    handler_name: str
    route: str = ""


@dataclass(frozen=True, slots=True)
class ServiceDefinition:
    """Package, service name and the ordered RPC methods it exposes."""

    package: str
    name: str
    methods: tuple[MethodDefinition, ...]

    @property
    def full_name(self) -> str:
        return f"{self.package}.{self.name}" if self.package else self.name

    def method(self, name: str) -> MethodDefinition | None:
        for method in self.methods:
            if method.name == name:
                return method
        return None


@dataclass(frozen=True, slots=True)
class BoundMethod:
    """A method definition bound to the handler callable that serves it."""

    service: ServiceDefinition
    method: MethodDefinition
    handler: Handler


def route_for(package: str, service_name: str, method_name: str) -> str:
    """Build `/{package}.{service}/{method}`; the package segment is optional."""
    full_name = f"{package}.{service_name}" if package else service_name
    return f"/{full_name}/{method_name}"


def rpc(
    name: str,
    request_type: type[Message],
    response_type: type[Message],
    handler_name: str,
) -> MethodDefinition:
    """Declare an RPC method (mirrors `rpc :Name, Req, Resp, :handler` in a .proto service)."""
    if not name:
        raise ServiceConfigError("rpc method name is required")
    if not handler_name:
        raise ServiceConfigError(f"rpc {name} needs a handler name")
    return MethodDefinition(name, request_type, response_type, handler_name)


def service(package: str, name: str, methods: Iterable[MethodDefinition]) -> ServiceDefinition:
    """Build an immutable service definition with precomputed routes."""
    if not name:
        raise ServiceConfigError("service name is required")
    seen: set[str] = set()
    routed: list[MethodDefinition] = []
    for method in methods:
        if method.name in seen:
            raise ServiceConfigError(f"duplicate rpc method {method.name!r} in service {name!r}")
        seen.add(method.name)
        routed.append(dataclasses.replace(method, route=route_for(package, name, method.name)))
    return ServiceDefinition(package=package or "", name=name, methods=tuple(routed))


def _resolve_handler(handler: Any, method: MethodDefinition, definition: ServiceDefinition) -> Handler:
    if isinstance(handler, Mapping):
        fn = handler.get(method.handler_name)
    else:
        fn = getattr(handler, method.handler_name, None)
    if not callable(fn):
        raise ServiceConfigError(
            f"handler for {definition.full_name} does not implement "
            f"{method.handler_name!r} (rpc {method.name})"
        )
    return fn


class ServiceRegistry:
    """Route table mapping `/{package}.{service}/{method}` to bound handlers.

    Registration happens at startup; freeze() closes the table before any
    request is served, after which lookups are plain dict reads.
    """

    def __init__(self) -> None:
        self._routes: dict[str, BoundMethod] = {}
        self._services: list[ServiceDefinition] = []
        self._lock = threading.Lock()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def services(self) -> tuple[ServiceDefinition, ...]:
        return tuple(self._services)

    def register(self, definition: ServiceDefinition, handler: Any) -> ServiceDefinition:
        """Bind every method of `definition` to `handler`."""
        with self._lock:
            if self._frozen:
                raise ServiceConfigError(
                    f"cannot register {definition.full_name}: registry is frozen"
                )
            bound: dict[str, BoundMethod] = {}
            for method in definition.methods:
                route = method.route or route_for(definition.package, definition.name, method.name)
                if route in self._routes or route in bound:
                    raise ServiceConfigError(f"route collision: {route}")
                bound[route] = BoundMethod(definition, method, _resolve_handler(handler, method, definition))
            self._routes.update(bound)
            self._services.append(definition)
        return definition

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    def lookup(self, path: str) -> BoundMethod | None:
        return self._routes.get(path)

    def routes(self) -> list[tuple[str, BoundMethod]]:
        return list(self._routes.items())
