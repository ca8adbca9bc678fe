"""Twirp client stubs built from a ServiceDefinition."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping

from google.protobuf.message import Message

from twirpy.codec import Format, content_type_for, decode, encode, negotiate
from twirpy.config.schema import ClientSettings
from twirpy.context import RequestContext
from twirpy.errors import TwirpError
from twirpy.service import MethodDefinition, ServiceDefinition
from twirpy.client.transport import HttpxTransport, Transport, TransportResponse
from twirpy.utils.sanitize import describe_exception

# Headers the stub sets itself, or that belong to an inbound request and
# must not leak into an outgoing one when a server context is reused.
_RESERVED_HEADERS = frozenset(
    {"accept", "accept-encoding", "connection", "content-length", "content-type", "host", "transfer-encoding"}
)


def error_from_response(status_code: int, body: bytes) -> TwirpError:
    """Decode a non-2xx reply body into a TwirpError.

    Bodies that are not Twirp error JSON (proxies, load balancers) become an
    internal error that records the HTTP status.
    """
    try:
        return TwirpError.from_dict(json.loads(body))
    except ValueError:
        text = body.decode("utf-8", errors="replace")
        return TwirpError.internal(
            f"unexpected HTTP status {status_code} without a twirp error body",
            {
                "http_error_from_intermediary": "true",
                "status_code": status_code,
                "body": text[:500],
            },
        )


class MethodStub:
    """Client side of one RPC method: `await stub(request, ctx)`."""

    def __init__(
        self,
        definition: ServiceDefinition,
        method: MethodDefinition,
        base_url: str,
        transport: Transport,
        *,
        fmt: Format = Format.JSON,
        path_prefix: str = "/twirp",
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        use_proto_names: bool = True,
    ):
        self.definition = definition
        self.method = method
        self.url = f"{base_url.rstrip('/')}{path_prefix}{method.route}"
        self._transport = transport
        self._format = Format(fmt)
        self._headers = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        self._timeout = timeout
        self._use_proto_names = use_proto_names

    def __repr__(self) -> str:
        return f"MethodStub({self.definition.full_name}/{self.method.name})"

    async def __call__(self, request: Message, ctx: RequestContext | None = None) -> Message:
        ctx = ctx or RequestContext()
        if not isinstance(request, self.method.request_type):
            raise TwirpError.internal(
                f"{self.method.name} expects {self.method.request_type.__name__}, "
                f"got {type(request).__name__}"
            )
        if ctx.cancelled:
            raise TwirpError.canceled("request canceled by the caller")

        timeout = self._timeout
        remaining = ctx.time_remaining()
        if remaining is not None:
            if remaining <= 0:
                raise TwirpError.deadline_exceeded("deadline exceeded before the request was sent")
            timeout = remaining if timeout is None else min(timeout, remaining)

        content_type = content_type_for(self._format)
        headers = dict(self._headers)
        headers.update({k: v for k, v in ctx.headers.items() if k not in _RESERVED_HEADERS})
        headers["content-type"] = content_type
        headers["accept"] = content_type
        body = encode(request, self._format, use_proto_names=self._use_proto_names)

        reply = await self._send(ctx, headers, body, timeout)
        return self._read_reply(reply)

    async def _send(
        self,
        ctx: RequestContext,
        headers: dict[str, str],
        body: bytes,
        timeout: float | None,
    ) -> TransportResponse:
        send = asyncio.ensure_future(self._transport.send(self.url, "POST", headers, body, timeout=timeout))
        cancelled = asyncio.ensure_future(ctx.wait_cancelled())
        try:
            await asyncio.wait({send, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not send.done():
                send.cancel()

        if not send.done() or send.cancelled():
            await asyncio.gather(send, return_exceptions=True)
            raise TwirpError.canceled("request canceled by the caller")

        exc = send.exception()
        if isinstance(exc, TwirpError):
            raise exc
        if exc is not None:
            raise TwirpError.unavailable(f"twirp transport failed: {describe_exception(exc)}") from exc
        return send.result()

    def _read_reply(self, reply: TransportResponse) -> Message:
        if not 200 <= reply.status_code < 300:
            raise error_from_response(reply.status_code, reply.body)
        content_type = reply.headers.get("content-type")
        fmt = negotiate(content_type)
        if fmt is None:
            raise TwirpError.internal(
                f"unexpected Content-Type in response: {content_type!r}",
                {"status_code": reply.status_code},
            )
        return decode(reply.body, self.method.response_type, fmt)


class TwirpClient:
    """
    Client for every method of a service.

    Stubs are built once; `client.call("MakeHat", req)` looks them up by RPC
    name and `client.make_hat(req)` by handler name.
    """

    def __init__(
        self,
        definition: ServiceDefinition,
        base_url: str,
        *,
        transport: Transport | None = None,
        settings: ClientSettings | None = None,
        fmt: Format | str | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        settings = settings or ClientSettings()
        self.definition = definition
        self.base_url = base_url
        self.format = Format(fmt or settings.format)
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport(timeout=settings.timeout)
        self._stubs: dict[str, MethodStub] = {}
        self._by_handler: dict[str, MethodStub] = {}
        for method in definition.methods:
            stub = MethodStub(
                definition,
                method,
                base_url,
                self._transport,
                fmt=self.format,
                path_prefix=settings.path_prefix,
                headers=headers,
                timeout=settings.timeout,
                use_proto_names=settings.json_use_proto_names,
            )
            self._stubs[method.name] = stub
            self._by_handler[method.handler_name] = stub

    def stub(self, method_name: str) -> MethodStub:
        try:
            return self._stubs[method_name]
        except KeyError:
            raise TwirpError.bad_route(
                f"{self.definition.full_name} has no method {method_name!r}"
            ) from None

    async def call(self, method_name: str, request: Message, ctx: RequestContext | None = None) -> Message:
        return await self.stub(method_name)(request, ctx)

    def __getattr__(self, name: str) -> Any:
        stubs = self.__dict__.get("_by_handler") or {}
        try:
            return stubs[name]
        except KeyError:
            raise AttributeError(f"{type(self).__name__} has no attribute {name!r}") from None

    async def aclose(self) -> None:
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()

    async def __aenter__(self) -> TwirpClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
