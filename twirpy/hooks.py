"""Server hooks: the single extension point around handler invocation."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from twirpy.context import RequestContext
from twirpy.errors import TwirpError

BeforeHook = Callable[[RequestContext, Any], "TwirpError | None | Awaitable[TwirpError | None]"]
SuccessHook = Callable[[RequestContext, Any], Any]
ErrorHook = Callable[[RequestContext, TwirpError], Any]
ExceptionHook = Callable[[RequestContext, BaseException], Any]


async def _maybe_await(value: Any) -> Any:
    return await value if inspect.isawaitable(value) else value


async def run_before_hooks(
    hooks: Iterable[BeforeHook],
    ctx: RequestContext,
    request: Any,
) -> TwirpError | None:
    """Run before-hooks in order and return the first rejection.

    A hook rejects a call by returning or raising a TwirpError; any other
    exception propagates to the dispatcher and is treated as a crash.
    """
    for hook in hooks:
        try:
            outcome = await _maybe_await(hook(ctx, request))
        except TwirpError as err:
            return err
        if isinstance(outcome, TwirpError):
            return outcome
    return None


async def notify(hooks: Iterable[Callable[..., Any]], stage: str, *args: Any) -> None:
    """Run notification hooks; failures are logged and never change the response."""
    for hook in hooks:
        try:
            await _maybe_await(hook(*args))
        except Exception as exc:
            logger.warning("Twirp {} hook {} failed: {}", stage, getattr(hook, "__name__", hook), exc)


@dataclass(slots=True)
class ServerHooks:
    """Callbacks run by the dispatcher.

    before: after decoding, before the handler; may reject with a TwirpError.
    on_success: after a response message was produced.
    on_error: for every error response, whatever its source.
    on_exception: when the handler (or a before hook) crashed.
    """

    before: list[BeforeHook] = field(default_factory=list)
    on_success: list[SuccessHook] = field(default_factory=list)
    on_error: list[ErrorHook] = field(default_factory=list)
    on_exception: list[ExceptionHook] = field(default_factory=list)
