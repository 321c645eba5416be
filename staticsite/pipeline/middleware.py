"""Composable request middleware."""

from typing import Callable

from staticsite.domain.http_types import Handler

Middleware = Callable[[Handler], Handler]


def apply(*middlewares: Middleware) -> Middleware:
    """Return a middleware that applies ``middlewares`` in the order given.

    The first middleware is outermost: it runs first on the way in and last
    on the way out, so ``apply(m1, m2, ..., mn)(handler)`` is equivalent to
    ``m1(m2(...mn(handler)))``.
    """

    def wrap(handler: Handler) -> Handler:
        for middleware in reversed(middlewares):
            handler = middleware(handler)
        return handler

    return wrap
