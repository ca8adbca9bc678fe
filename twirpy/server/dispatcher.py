"""Server-side Twirp dispatch: route, negotiate, decode, invoke, respond."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from google.protobuf.message import Message
from loguru import logger

from twirpy.codec import Format, content_type_for, decode, encode, negotiate
from twirpy.config.schema import ServerSettings
from twirpy.context import RequestContext, ResponseGuard
from twirpy.errors import TwirpError
from twirpy.hooks import ServerHooks, notify, run_before_hooks
from twirpy.service import BoundMethod, ServiceDefinition, ServiceRegistry
from twirpy.utils.sanitize import describe_exception

INTERNAL_ERROR_MESSAGE = "internal server error"
ERROR_CONTENT_TYPE = "application/json"


@dataclass(slots=True)
class TwirpRequest:
    """Raw inbound call as handed over by the HTTP adapter."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.headers = {str(k).lower(): str(v) for k, v in self.headers.items()}


@dataclass(slots=True)
class TwirpResponse:
    """Status, headers and body to write back; `error` is set for error responses."""

    status_code: int
    headers: dict[str, str]
    body: bytes
    error: TwirpError | None = None
    message: Message | None = None

    @classmethod
    def from_error(cls, err: TwirpError) -> TwirpResponse:
        return cls(err.status_code, {"content-type": ERROR_CONTENT_TYPE}, err.to_json(), err)


Respond = Callable[[TwirpResponse], Awaitable[None]]


class Dispatcher:
    """
    Serves the methods of a frozen ServiceRegistry.

    Every call ends in exactly one TwirpResponse: the pipeline and a
    cancellation watcher race to write it through a ResponseGuard. A
    pipeline that ends without writing (e.g. the handler let a
    CancelledError escape) is answered with an internal error.

    Async handlers are cancelled along with the call. Sync handlers run in
    a worker thread that cannot be interrupted: after a cancellation the
    thread runs to completion and its result is discarded, so long-running
    sync handlers should poll `ctx.cancelled` and return early.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        *,
        settings: ServerSettings | None = None,
        hooks: ServerHooks | None = None,
    ):
        registry.freeze()
        self.registry = registry
        self.settings = settings or ServerSettings()
        self.hooks = hooks or ServerHooks()

    @classmethod
    def for_service(cls, definition: ServiceDefinition, handler: Any, **kwargs: Any) -> Dispatcher:
        """Shortcut for a dispatcher serving a single service."""
        registry = ServiceRegistry()
        registry.register(definition, handler)
        return cls(registry, **kwargs)

    async def dispatch(
        self,
        request: TwirpRequest,
        ctx: RequestContext | None = None,
        respond: Respond | None = None,
    ) -> TwirpResponse:
        """Handle one call; `respond`, if given, is awaited exactly once."""
        ctx = ctx or RequestContext()
        for name, value in request.headers.items():
            ctx.headers.setdefault(name, value)

        guard: ResponseGuard[TwirpResponse] = ResponseGuard(respond)
        pipeline = asyncio.ensure_future(self._run_guarded(request, ctx, guard))
        watcher = asyncio.ensure_future(self._watch_cancellation(ctx, guard))
        written = asyncio.ensure_future(guard.wait())
        try:
            await asyncio.wait({pipeline, written}, return_when=asyncio.FIRST_COMPLETED)
            if not guard.claimed:
                await self._write_crash(guard, ctx, self._abandoned_reason(pipeline))
            response = await written
        finally:
            for task in (pipeline, watcher, written):
                task.cancel()
            outcomes = await asyncio.gather(pipeline, watcher, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                logger.error("Twirp dispatch task for {} failed: {}", request.path, describe_exception(outcome))
        logger.debug("Twirp {} {} -> {}", request.method, request.path, response.status_code)
        if response.error is not None:
            if response.status_code >= 500:
                logger.warning("Twirp {}.{} failed with {}", ctx.service_name, ctx.method_name, response.error)
            await notify(self.hooks.on_error, "on_error", ctx, response.error)
        else:
            await notify(self.hooks.on_success, "on_success", ctx, response.message)
        return response

    def _route(self, request: TwirpRequest) -> BoundMethod:
        method = request.method.upper()
        meta = {"twirp_invalid_route": f"{method} {request.path}"}
        if method != "POST":
            raise TwirpError.bad_route("HTTP request must be POST", meta)
        prefix = self.settings.path_prefix
        route = request.path
        if prefix:
            if not route.startswith(prefix + "/"):
                raise TwirpError.bad_route(f"no handler for path {request.path!r}", meta)
            route = route[len(prefix):]
        bound = self.registry.lookup(route)
        if bound is None:
            raise TwirpError.bad_route(f"no handler for path {request.path!r}", meta)
        return bound

    def _negotiate(self, request: TwirpRequest) -> Format:
        content_type = request.headers.get("content-type")
        fmt = negotiate(content_type)
        if fmt is None:
            raise TwirpError.bad_route(
                f"unexpected Content-Type: {content_type!r}",
                {"twirp_invalid_route": f"{request.method.upper()} {request.path}"},
            )
        return fmt

    async def _run_guarded(self, request: TwirpRequest, ctx: RequestContext, guard: ResponseGuard[TwirpResponse]) -> None:
        try:
            await self._run(request, ctx, guard)
        except Exception as exc:
            await self._write_crash(guard, ctx, exc)

    async def _run(self, request: TwirpRequest, ctx: RequestContext, guard: ResponseGuard[TwirpResponse]) -> None:
        if ctx.cancelled:
            await self._write_error(guard, ctx, _canceled_error(ctx))
            return
        try:
            bound = self._route(request)
            fmt = self._negotiate(request)
            message = decode(
                request.body,
                bound.method.request_type,
                fmt,
                strict=self.settings.strict_decoding,
            )
        except TwirpError as err:
            await self._write_error(guard, ctx, err)
            return

        ctx.package = bound.service.package
        ctx.service_name = bound.service.name
        ctx.method_name = bound.method.name

        try:
            rejection = await run_before_hooks(self.hooks.before, ctx, message)
            if rejection is not None:
                await self._write_error(guard, ctx, rejection)
                return
            if ctx.cancelled:
                await self._write_error(guard, ctx, _canceled_error(ctx))
                return
            result = await self._invoke(bound, ctx, message)
        except TwirpError as err:
            await self._write_error(guard, ctx, err)
            return
        except Exception as exc:
            await self._write_crash(guard, ctx, exc)
            return

        if isinstance(result, TwirpError):
            await self._write_error(guard, ctx, result)
            return
        if not isinstance(result, bound.method.response_type):
            await self._write_error(
                guard,
                ctx,
                TwirpError.internal(
                    f"handler for {bound.method.name} returned {type(result).__name__}, "
                    f"expected {bound.method.response_type.__name__} or TwirpError"
                ),
            )
            return

        try:
            body = encode(result, fmt, use_proto_names=self.settings.json_use_proto_names)
        except Exception as exc:
            await self._write_crash(guard, ctx, exc)
            return
        await self._deliver(guard, ctx, TwirpResponse(200, {"content-type": content_type_for(fmt)}, body, message=result))

    async def _invoke(self, bound: BoundMethod, ctx: RequestContext, message: Message) -> Any:
        handler = bound.handler
        if inspect.iscoroutinefunction(handler):
            return await handler(ctx, message)
        result = await asyncio.to_thread(handler, ctx, message)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _watch_cancellation(self, ctx: RequestContext, guard: ResponseGuard[TwirpResponse]) -> None:
        await ctx.wait_cancelled()
        await self._write_error(guard, ctx, _canceled_error(ctx))

    @staticmethod
    def _abandoned_reason(pipeline: asyncio.Future) -> BaseException:
        """Why a finished pipeline left the guard unclaimed."""
        try:
            pipeline.result()
        except (asyncio.CancelledError, Exception) as exc:
            return exc
        return RuntimeError("pipeline finished without writing a response")

    async def _write_crash(self, guard: ResponseGuard[TwirpResponse], ctx: RequestContext, exc: BaseException) -> None:
        logger.opt(exception=exc).error(
            "Twirp handler {}.{} crashed: {}",
            ctx.service_name,
            ctx.method_name,
            describe_exception(exc),
        )
        await notify(self.hooks.on_exception, "on_exception", ctx, exc)
        await self._write_error(guard, ctx, TwirpError.internal(INTERNAL_ERROR_MESSAGE))

    async def _write_error(self, guard: ResponseGuard[TwirpResponse], ctx: RequestContext, err: TwirpError) -> None:
        await self._deliver(guard, ctx, TwirpResponse.from_error(err))

    async def _deliver(self, guard: ResponseGuard[TwirpResponse], ctx: RequestContext, response: TwirpResponse) -> None:
        # Sink failures are logged here and never reach `_write_crash`.
        try:
            await guard.write(response)
        except Exception as exc:
            logger.error(
                "Twirp response delivery failed for {}.{} (status {}): {}",
                ctx.service_name,
                ctx.method_name,
                response.status_code,
                describe_exception(exc),
            )


def _canceled_error(ctx: RequestContext) -> TwirpError:
    reason = ctx.cancellation.reason
    return TwirpError.canceled("request canceled", {"reason": reason} if reason else None)
