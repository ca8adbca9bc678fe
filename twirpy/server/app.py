"""FastAPI binding for the Twirp dispatcher.

In the overall architecture: the HTTP layer only moves bytes. It hands
method, path, headers and body to the Dispatcher and writes back whatever
TwirpResponse comes out, firing the request's cancellation when the client
goes away.
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, Request
from fastapi.responses import Response

from twirpy.context import RequestContext
from twirpy.server.dispatcher import Dispatcher, TwirpRequest

_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


async def _watch_disconnect(request: Request, ctx: RequestContext, interval: float) -> None:
    while not ctx.cancelled:
        if await request.is_disconnected():
            ctx.cancel("client disconnected")
            return
        await asyncio.sleep(interval)


def _make_endpoint(dispatcher: Dispatcher):
    interval = dispatcher.settings.disconnect_poll_interval

    async def twirp_endpoint(request: Request) -> Response:
        body = await request.body()
        ctx = RequestContext()
        twirp_request = TwirpRequest(
            method=request.method,
            path=request.url.path,
            headers=dict(request.headers),
            body=body,
        )
        watcher = asyncio.create_task(_watch_disconnect(request, ctx, interval))
        try:
            result = await dispatcher.dispatch(twirp_request, ctx)
        finally:
            watcher.cancel()
        return Response(content=result.body, status_code=result.status_code, headers=result.headers)

    return twirp_endpoint


def mount_twirp(app: FastAPI, dispatcher: Dispatcher) -> None:
    """Serve the dispatcher's routes under its path prefix on an existing app."""
    prefix = dispatcher.settings.path_prefix
    app.add_api_route(
        f"{prefix}/{{rpc_path:path}}",
        _make_endpoint(dispatcher),
        methods=_ALL_METHODS,
        include_in_schema=False,
    )


def create_app(dispatcher: Dispatcher, *, title: str = "twirpy") -> FastAPI:
    """Standalone app: every path goes to the dispatcher, so misses get Twirp errors."""
    app = FastAPI(title=title, docs_url=None, redoc_url=None, openapi_url=None)
    app.add_api_route(
        "/{rpc_path:path}",
        _make_endpoint(dispatcher),
        methods=_ALL_METHODS,
        include_in_schema=False,
    )
    return app
