"""HTTP router: route registration and sub-router composition.

Inspired by express' Router
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from arbor.tree import (
    Method,
    RouteKey,
    RouteNode,
    attach,
    sanitize_path,
)

if TYPE_CHECKING:
    from arbor.http import RequestHandler

type HTTPMethod = Literal["GET", "POST", "PUT", "DELETE"]


class Router:
    """A routing tree that can be served directly or mounted into another."""

    __slots__ = ("_finalized", "_root")
    _root: RouteNode[RequestHandler]
    _finalized: bool

    def __init__(self) -> None:
        self._root = RouteNode(children={})
        self._finalized = False

    @property
    def root(self) -> RouteNode[RequestHandler]:
        return self._root

    def finalize(self) -> None:
        """Freeze the routing tree. Idempotent.

        Called automatically when the server starts; registering anything
        afterwards raises ValueError.
        """
        self._finalized = True

    def use(self, *middleware: RequestHandler) -> None:
        """Adds middleware that runs before every route of this router."""
        self._check_open()
        self._root.middlewares.extend(middleware)

    def handle(
        self,
        path: str,
        *fns: RequestHandler | Router,
        handler: RequestHandler | None = None,
        router: Router | None = None,
        catch_all: bool = False,
    ) -> None:
        """Registers a route at path for any method.

        The last function is the handler, the preceding ones its middleware.
        A trailing Router (or `router=`) is mounted at path instead, the
        functions before it run ahead of its own middleware.
        """
        self._register(None, path, fns, handler, router, catch_all)

    def all(
        self,
        path: str,
        *fns: RequestHandler | Router,
        handler: RequestHandler | None = None,
        router: Router | None = None,
    ) -> None:
        """Registers a route at path for any method that also takes every sub-path."""
        self._register(None, path, fns, handler, router, True)

    def method(
        self,
        method: HTTPMethod | None,
        path: str,
        *fns: RequestHandler | Router,
        handler: RequestHandler | None = None,
        router: Router | None = None,
        catch_all: bool = False,
    ) -> None:
        """Registers a route at path for method, or any method when None."""
        self._register(
            Method(method) if method is not None else None,
            path,
            fns,
            handler,
            router,
            catch_all,
        )

    def get(
        self,
        path: str,
        *fns: RequestHandler | Router,
        handler: RequestHandler | None = None,
        router: Router | None = None,
        catch_all: bool = False,
    ) -> None:
        """Registers a route at path for GET."""
        self._register(Method.GET, path, fns, handler, router, catch_all)

    def post(
        self,
        path: str,
        *fns: RequestHandler | Router,
        handler: RequestHandler | None = None,
        router: Router | None = None,
        catch_all: bool = False,
    ) -> None:
        """Registers a route at path for POST."""
        self._register(Method.POST, path, fns, handler, router, catch_all)

    def put(
        self,
        path: str,
        *fns: RequestHandler | Router,
        handler: RequestHandler | None = None,
        router: Router | None = None,
        catch_all: bool = False,
    ) -> None:
        """Registers a route at path for PUT."""
        self._register(Method.PUT, path, fns, handler, router, catch_all)

    def delete(
        self,
        path: str,
        *fns: RequestHandler | Router,
        handler: RequestHandler | None = None,
        router: Router | None = None,
        catch_all: bool = False,
    ) -> None:
        """Registers a route at path for DELETE."""
        self._register(Method.DELETE, path, fns, handler, router, catch_all)

    def mount(self, path: str, router: Router, *middleware: RequestHandler) -> None:
        """Merges in another router at path, for any method.

        Mounting at "/" flattens the other router's routes onto this one.
        """
        self._register(None, path, middleware, None, router, False)

    def _register(
        self,
        method: Method | None,
        path: str,
        fns: tuple[RequestHandler | Router, ...],
        handler: RequestHandler | None,
        router: Router | None,
        catch_all: bool,
    ) -> None:
        self._check_open()
        if fns and isinstance(fns[-1], Router):
            if router is not None:
                msg = "router given both positionally and as router="
                raise ValueError(msg)
            router = fns[-1]
            fns = fns[:-1]
        if any(isinstance(fn, Router) for fn in fns):
            msg = "a router can only be the last argument of a route"
            raise ValueError(msg)
        if router is self:
            msg = "a router cannot be mounted onto itself"
            raise ValueError(msg)

        middleware: list[RequestHandler] = list(fns)  # ty: ignore[invalid-assignment]  - routers filtered above
        attach(
            self._root.children,  # ty: ignore[invalid-argument-type]  - root always has children
            RouteKey(sanitize_path(path), method),
            middleware,
            handler=handler,
            sub=router._root if router is not None else None,
            catch_all=catch_all,
        )

    def _check_open(self) -> None:
        if self._finalized:
            msg = "router is finalized, routes can't be added once serving"
            raise ValueError(msg)
