"""Base middleware architecture for Robyn routers."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from robyn_multipart.core.context import RequestContext
from robyn_multipart.core.logger import LogIcon, logger

Endpoint = Callable[[RequestContext], Awaitable[Any]]


class BaseMiddleware(ABC):
    """Abstract base class for middlewares wrapping the rest of the chain."""

    endpoints: frozenset[str]

    def __init__(self, endpoints: frozenset[str] | list[str] | None = None) -> None:
        self.endpoints = frozenset(endpoints) if endpoints else frozenset()

    def applies_to(self, path: str) -> bool:
        """Whether this middleware runs for ``path``. No endpoints means every path."""
        return not self.endpoints or path in self.endpoints

    @abstractmethod
    async def dispatch(self, ctx: RequestContext, call_next: Endpoint) -> Any:
        """Handle the request. Await ``call_next(ctx)`` to continue, or return early to short-circuit."""
        ...


class MiddlewareHandler:
    """Manages middleware registration and runs the chain for one request."""

    def __init__(self) -> None:
        self._middlewares: list[BaseMiddleware] = []

    @property
    def middlewares(self) -> list[BaseMiddleware]:
        return list(self._middlewares)

    def register(self, middleware: BaseMiddleware) -> "MiddlewareHandler":
        """Register a middleware. Returns self for chaining."""
        self._middlewares.append(middleware)
        logger.info(f"Registered middleware: {middleware.__class__.__name__}", icon=LogIcon.REGISTER)
        return self

    async def __call__(self, ctx: RequestContext, endpoint: Endpoint, path: str | None = None) -> Any:
        """Run applicable middlewares in registration order, then ``endpoint``."""
        route = path or ctx.path
        chain = [m for m in self._middlewares if m.applies_to(route)]

        async def call_at(index: int, current: RequestContext) -> Any:
            if index == len(chain):
                return await endpoint(current)
            return await chain[index].dispatch(current, lambda c: call_at(index + 1, c))

        return await call_at(0, ctx)
