"""Zero dependency routing tree implementation with literal, multi-segment keys.

Each edge out of a node is keyed by a literal path (one or more segments joined
by "/") and an optional HTTP method. A multi-segment key is consumed in a single
step, so "deep/deeper/deepest" needs no intermediate nodes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum

http_route: ContextVar[str] = ContextVar("http_route")


class Method(Enum):
    """HTTP methods a route can be registered for."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    def __repr__(self) -> str:
        return str(self.value)

    @classmethod
    def from_request(cls, method: str) -> Method:
        """Normalise a request method. Anything unknown is treated as POST."""
        try:
            return cls(method.upper())
        except ValueError:
            return cls.POST


@dataclass(slots=True, frozen=True)
class RouteKey:
    """Identity of a tree edge: a literal path plus an optional method.

    `path` is already sanitized, the root path is "". A key without a method
    matches any method.
    """

    path: str
    method: Method | None = None

    def __str__(self) -> str:
        method = "*" if self.method is None else self.method.value
        return f"{method} /{self.path}"


@dataclass(slots=True)
class RouteNode[T]:
    """A unit in the routing tree."""

    handler: T | None = None
    children: RouterTree[T] | None = None
    middlewares: list[T] = field(default_factory=list)
    catch_all: bool = False

    def copy(self, prefix: Iterable[T] = ()) -> RouteNode[T]:
        """Deep copy of the node's structure with `prefix` ahead of its middlewares.

        Handlers and middlewares themselves are shared, the containers are not.
        """
        return RouteNode(
            handler=self.handler,
            children=copy_tree(self.children),
            middlewares=[*prefix, *self.middlewares],
            catch_all=self.catch_all,
        )


type RouterTree[T] = dict[RouteKey, RouteNode[T]]


def copy_tree[T](tree: RouterTree[T] | None) -> RouterTree[T] | None:
    if tree is None:
        return None
    return {key: node.copy() for key, node in tree.items()}


def split_path(path: str) -> list[str]:
    """Split a path into its non-empty segments."""
    return [seg for seg in path.split("/") if seg]


def sanitize_path(path: str) -> str:
    """Strip leading, trailing and repeated slashes: "/a//b/" -> "a/b"."""
    return "/".join(split_path(path))


def lookup[T](
    children: RouterTree[T] | None, path: str, method: Method
) -> RouteNode[T] | None:
    """Find the child at `path`, method-agnostic routes first."""
    if not children:
        return None
    node = children.get(RouteKey(path))
    if node is None:
        node = children.get(RouteKey(path, method))
    return node


def find_handler[T](
    segments: Sequence[str],
    method: Method,
    root: RouteNode[T],
) -> tuple[T | None, tuple[T, ...], str]:
    """Walks the tree to find the handler for a request.

    Segments are accumulated until they form a registered key, at which point
    the walk descends and starts accumulating again. A miss on the last segment
    fails the match unless the current node is catch-all.

    Returns (handler, middlewares, route_pattern). handler is None when nothing
    matched; middlewares are ordered root first.
    """
    current = root
    middlewares: list[T] = list(root.middlewares)
    route_parts: list[str] = []

    if not segments:
        child = lookup(root.children, "", method)
        if child is not None:
            current = child
            middlewares.extend(child.middlewares)
    else:
        accumulated = ""
        last = len(segments) - 1
        for i, seg in enumerate(segments):
            accumulated = f"{accumulated}/{seg}" if accumulated else seg
            child = lookup(current.children, accumulated, method)
            if child is not None:  # descend, consume the accumulated key
                current = child
                middlewares.extend(child.middlewares)
                route_parts.append(accumulated)
                accumulated = ""
            elif i == last and not current.catch_all:  # no match
                return None, (), ""
        if accumulated:  # suffix absorbed by a catch-all node
            route_parts.append("...")

    # a mounted router may declare a default handler at its own root
    while current.handler is None and current.children:
        child = lookup(current.children, "", method)
        if child is None:
            break
        current = child
        middlewares.extend(child.middlewares)

    if current.handler is None:
        return None, (), ""
    return current.handler, tuple(middlewares), "/" + "/".join(route_parts)


def leaf_node[T](handlers: Sequence[T], *, catch_all: bool = False) -> RouteNode[T]:
    """Node for a route declared with functions only: the last one handles."""
    if not handlers:
        msg = "route requires a handler or a router"
        raise ValueError(msg)
    *middlewares, handler = handlers
    return RouteNode(handler=handler, middlewares=middlewares, catch_all=catch_all)


def mount_at_root[T](
    tree: RouterTree[T],
    key: RouteKey,
    sub: RouteNode[T],
    middlewares: Sequence[T] = (),
    *,
    handler: T | None = None,
    catch_all: bool = False,
) -> None:
    """Flatten a sub-router onto `tree` instead of nesting it one level deeper.

    Every direct child of `sub` is copied onto `tree` under its own key with the
    attaching middlewares, then the sub-router's own, ahead of the child's. The
    root handler (the explicit `handler`, else the sub-router's) lands on `key`.
    """
    prefix = [*middlewares, *sub.middlewares]
    for child_key, child in (sub.children or {}).items():
        tree[child_key] = child.copy(prefix)
    root_handler = handler if handler is not None else sub.handler
    if root_handler is not None:
        tree[key] = RouteNode(
            handler=root_handler, middlewares=prefix, catch_all=catch_all
        )


def attach[T](
    tree: RouterTree[T],
    key: RouteKey,
    middlewares: Sequence[T],
    *,
    handler: T | None = None,
    sub: RouteNode[T] | None = None,
    catch_all: bool = False,
) -> None:
    """Install a route or a sub-router on `tree` at `key`."""
    if sub is None:
        handlers = [*middlewares, handler] if handler is not None else middlewares
        tree[key] = leaf_node(handlers, catch_all=catch_all)
        return
    if key.path == "":
        mount_at_root(
            tree, key, sub, middlewares, handler=handler, catch_all=catch_all
        )
        return
    tree[key] = RouteNode(
        handler=handler if handler is not None else sub.handler,
        children=copy_tree(sub.children),
        middlewares=[*middlewares, *sub.middlewares],
        catch_all=catch_all,
    )


def format_routes[T](root: RouteNode[T], *, tree: bool = False) -> str:
    """Format registered routes as a human-readable string.

    By default produces a column-aligned flat route list:

        *     /                   home
        GET   /api                api_home   [log_body]
        *     /api/deep/deepest   deepest
        *     /echo/...           echo

    With `tree=True`, produces a visual tree instead:

        /
        ├── [*] (root) home
        ├── [*] api
        │   ├── [GET] (root) api_home [log_body]
        │   └── [*] deep/deepest deepest
        └── [*] echo echo ...
    """
    if tree:
        lines = ["/"]
        _render_tree(root, "", lines)
        return "\n".join(lines)

    routes = _collect_routes(root, [])
    if not routes:
        return ""
    routes.sort(key=lambda r: (r[1], r[0]))
    method_w = max(len(r[0]) for r in routes)
    path_w = max(len(r[1]) for r in routes)
    handler_w = max(len(r[2]) for r in routes)

    lines: list[str] = []
    for method, path, handler, mw in routes:
        if mw:
            lines.append(
                f"{method:<{method_w}}   {path:<{path_w}}   "
                f"{handler:<{handler_w}}   [{' > '.join(mw)}]"
            )
        else:
            lines.append(f"{method:<{method_w}}   {path:<{path_w}}   {handler}")
    return "\n".join(lines)


type _Route = tuple[str, str, str, list[str]]


def _collect_routes[T](node: RouteNode[T], parts: list[str]) -> list[_Route]:
    routes: list[_Route] = []
    for key, child in (node.children or {}).items():
        child_parts = [*parts, key.path] if key.path else parts
        if child.handler is not None:
            path = "/" + "/".join(child_parts)
            if child.catch_all:
                path = path.rstrip("/") + "/..."
            routes.append(
                (
                    _method_label(key),
                    path,
                    _qualname(child.handler),
                    [_qualname(m) for m in child.middlewares],
                )
            )
        routes.extend(_collect_routes(child, child_parts))
    return routes


def _render_tree[T](node: RouteNode[T], prefix: str, lines: list[str]) -> None:
    items = sorted((node.children or {}).items(), key=lambda kv: str(kv[0]))
    for i, (key, child) in enumerate(items):
        is_last = i == len(items) - 1
        connector = "└── " if is_last else "├── "
        label = f"[{_method_label(key)}] {key.path or '(root)'}"
        if child.handler is not None:
            label += f" {_qualname(child.handler)}"
        if child.catch_all:
            label += " ..."
        if child.middlewares:
            label += f" [{' > '.join(_qualname(m) for m in child.middlewares)}]"
        lines.append(f"{prefix}{connector}{label}")
        extension = "    " if is_last else "│   "
        _render_tree(child, prefix + extension, lines)


def _method_label(key: RouteKey) -> str:
    return "*" if key.method is None else key.method.value


def _qualname(obj: Callable[..., object] | object) -> str:
    """Extract __qualname__ from a callable, falling back to repr."""
    return str(obj.__qualname__) if hasattr(obj, "__qualname__") else repr(obj)
