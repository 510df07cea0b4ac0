from importlib.metadata import version

from .app import App, run_chain
from .http import Next, Request, RequestHandler, Response
from .router import Router
from .tree import Method, format_routes, http_route

__all__ = [
    "App",
    "Method",
    "Next",
    "Request",
    "RequestHandler",
    "Response",
    "Router",
    "__version__",
    "format_routes",
    "http_route",
    "run_chain",
]

__version__ = version("arbor")
