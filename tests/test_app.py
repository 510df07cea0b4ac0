import json
import logging
from dataclasses import replace
from pathlib import Path

import pytest
from conftest import MockHTTPProtocol, mock_exchange, mock_scope

from arbor import (
    App,
    Next,
    Request,
    RequestHandler,
    Response,
    Router,
    http_route,
    run_chain,
)


async def request(
    app: App, path: str, method: str = "GET", body: bytes = b"", **headers: str
) -> MockHTTPProtocol:
    proto = MockHTTPProtocol(body)
    path, _, query_string = path.partition("?")
    await app.__rsgi__(mock_scope(path, method, headers, query_string), proto)
    return proto


# --- run_chain ----------------------------------------------------------------
@pytest.mark.asyncio
async def test_run_chain_order() -> None:
    calls: list[str] = []

    def mw(name: str) -> RequestHandler:
        async def middleware(req: Request, res: Response, next: Next) -> None:
            calls.append(f"{name} before")
            await next()
            calls.append(f"{name} after")

        return middleware

    async def handler(req: Request, res: Response, next: Next) -> None:
        calls.append("handler")
        await next()  # no-op at the end of the chain

    req, res, _ = mock_exchange()
    reached = await run_chain([mw("a"), mw("b")], handler, req, res)

    assert reached
    assert calls == ["a before", "b before", "handler", "b after", "a after"]


@pytest.mark.asyncio
async def test_run_chain_halts() -> None:
    calls: list[str] = []

    async def first(req: Request, res: Response, next: Next) -> None:
        calls.append("first")
        await next()

    async def gate(req: Request, res: Response, next: Next) -> None:
        calls.append("gate")
        res.status(401).send("unauthorized")

    async def never(req: Request, res: Response, next: Next) -> None:
        calls.append("never")
        await next()

    async def handler(req: Request, res: Response, next: Next) -> None:
        calls.append("handler")

    req, res, proto = mock_exchange()
    reached = await run_chain([first, gate, never], handler, req, res)

    assert not reached
    assert calls == ["first", "gate"]
    assert proto.response_status == 401


@pytest.mark.asyncio
async def test_run_chain_next_twice_runs_once() -> None:
    calls: list[str] = []

    async def twice(req: Request, res: Response, next: Next) -> None:
        await next()
        await next()

    async def handler(req: Request, res: Response, next: Next) -> None:
        calls.append("handler")

    req, res, _ = mock_exchange()
    assert await run_chain([twice], handler, req, res)
    assert calls == ["handler"]


@pytest.mark.asyncio
async def test_run_chain_without_middleware() -> None:
    async def handler(req: Request, res: Response, next: Next) -> None:
        res.send("ok")

    req, res, proto = mock_exchange()
    assert await run_chain([], handler, req, res)
    assert proto.text == "ok"


@pytest.mark.asyncio
async def test_run_chain_middleware_sees_handler_response() -> None:
    async def add_header(req: Request, res: Response, next: Next) -> None:
        res.set_header("x-request-id", req.id)
        await next()

    async def handler(req: Request, res: Response, next: Next) -> None:
        res.send("ok")

    req, res, proto = mock_exchange()
    await run_chain([add_header], handler, req, res)
    assert proto.headers_dict["x-request-id"] == str(req.id)


# --- Dispatch -----------------------------------------------------------------
async def health(req: Request, res: Response, next: Next) -> None:
    res.send("I am healthy")


async def api_home(req: Request, res: Response, next: Next) -> None:
    res.send("API ROUTE")


async def echo(req: Request, res: Response, next: Next) -> None:
    words = [w for w in req.path.split("/")[2:] if w]
    message = " ".join(words)
    if message.lower() == "hello world":
        res.send("Come on! That's too easy.")
    else:
        res.send(message)


def demo_app() -> App:
    api = Router()
    api.get("/", api_home)

    app = App()
    app.get("/health", health)
    app.mount("/api", api)
    app.all("/echo", echo)
    return app


@pytest.mark.asyncio
async def test_health() -> None:
    proto = await request(demo_app(), "/health")
    assert proto.response_status == 200
    assert proto.text == "I am healthy"
    assert proto.headers_dict["content-type"] == "text/plain; charset=utf-8"


@pytest.mark.asyncio
async def test_mounted_router_root() -> None:
    proto = await request(demo_app(), "/api")
    assert proto.text == "API ROUTE"


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/echo/I/am/here", "I am here"),
        ("/echo/hello/world", "Come on! That's too easy."),
        ("/echo/Hello/World", "Come on! That's too easy."),
        ("/echo", ""),
    ],
)
@pytest.mark.asyncio
async def test_catch_all_echo(path: str, expected: str) -> None:
    proto = await request(demo_app(), path)
    assert proto.response_status == 200
    assert proto.text == expected


@pytest.mark.asyncio
async def test_not_found() -> None:
    proto = await request(demo_app(), "/missing/route?x=1")
    assert proto.response_status == 404
    assert proto.headers_dict["content-type"].startswith("application/json")
    assert json.loads(proto.text) == {"error": "NOT FOUND", "url": "/missing/route?x=1"}


@pytest.mark.asyncio
async def test_http_route_is_set_during_chain() -> None:
    seen: list[str] = []

    async def handler(req: Request, res: Response, next: Next) -> None:
        seen.append(http_route.get())
        res.end()

    api = Router()
    api.get("/users", handler)
    app = App()
    app.mount("/api", api)
    app.all("/files", handler)

    await request(app, "/api/users")
    await request(app, "/files/a/b")
    assert seen == ["/api/users", "/files/..."]
    assert http_route.get(None) is None


@pytest.mark.asyncio
async def test_dispatch_directly() -> None:
    app = demo_app()
    req, res, proto = mock_exchange("/health")
    await app.dispatch(req, res)
    assert proto.text == "I am healthy"


@pytest.mark.asyncio
async def test_handler_exception_propagates() -> None:
    async def boom(req: Request, res: Response, next: Next) -> None:
        msg = "boom"
        raise RuntimeError(msg)

    app = App()
    app.get("/boom", boom)

    with pytest.raises(RuntimeError, match="boom"):
        await request(app, "/boom")


@pytest.mark.asyncio
async def test_websocket_scope_raises() -> None:
    app = demo_app()
    scope = replace(mock_scope("/health"), proto="websocket")
    with pytest.raises(ValueError, match="unsupported protocol"):
        await app.__rsgi__(scope, MockHTTPProtocol())


# --- Request data through the app ---------------------------------------------
@pytest.mark.asyncio
async def test_query_and_body() -> None:
    async def handler(req: Request, res: Response, next: Next) -> None:
        res.send({"query": req.query, "body": await req.body(), "path": req.path})

    app = App()
    app.post("/form", handler)

    proto = await request(
        app,
        "/form?page=2&sort=name",
        "POST",
        b"name=arbor&kind=router",
        **{"content-type": "application/x-www-form-urlencoded"},
    )
    assert json.loads(proto.text) == {
        "query": {"page": "2", "sort": "name"},
        "body": {"name": "arbor", "kind": "router"},
        "path": "/form",
    }


# --- Stalled chains -----------------------------------------------------------
@pytest.mark.asyncio
async def test_stalled_middleware_responds_500(caplog: pytest.LogCaptureFixture) -> None:
    calls: list[str] = []

    async def stall(req: Request, res: Response, next: Next) -> None:
        calls.append("stall")

    async def handler(req: Request, res: Response, next: Next) -> None:
        calls.append("handler")
        res.send("unreachable")

    app = App()
    app.get("/stall", stall, handler)

    with caplog.at_level(logging.WARNING, logger="arbor.app"):
        proto = await request(app, "/stall")

    assert calls == ["stall"]
    assert proto.response_status == 500
    assert proto.response_body == b""
    assert "no response sent" in caplog.text


@pytest.mark.asyncio
async def test_silent_handler_responds_500() -> None:
    async def silent(req: Request, res: Response, next: Next) -> None:
        pass

    app = App()
    app.get("/silent", silent)

    proto = await request(app, "/silent")
    assert proto.response_status == 500


# --- Static fallback ----------------------------------------------------------
@pytest.fixture
def public(tmp_path: Path) -> Path:
    directory = tmp_path / "public"
    directory.mkdir()
    (directory / "index.html").write_text("<h1>home</h1>")
    (directory / "css").mkdir()
    (directory / "css" / "site.css").write_text("body {}")
    (tmp_path / "secret.txt").write_text("secret")
    return directory


@pytest.mark.asyncio
async def test_static_fallback(public: Path) -> None:
    app = App(static_dir=public)
    app.get("/health", health)

    proto = await request(app, "/css/site.css")
    assert proto.response_status == 200
    assert proto.response_file_path == str((public / "css" / "site.css").resolve())
    assert proto.headers_dict["content-type"] == "text/css"

    proto = await request(app, "/health")
    assert proto.text == "I am healthy"


@pytest.mark.asyncio
async def test_routes_take_precedence_over_static(public: Path) -> None:
    async def index(req: Request, res: Response, next: Next) -> None:
        res.send("route")

    app = App(static_dir=public)
    app.get("/index.html", index)

    proto = await request(app, "/index.html")
    assert proto.text == "route"
    assert proto.response_file_path is None


@pytest.mark.asyncio
async def test_static_relative_to_cwd(
    public: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(public.parent)
    app = App()
    app.static("public")

    proto = await request(app, "/index.html")
    assert proto.response_file_path == str((public / "index.html").resolve())


@pytest.mark.parametrize("path", ["/missing.txt", "/../secret.txt", "/css", "/"])
@pytest.mark.asyncio
async def test_static_misses_are_not_found(public: Path, path: str) -> None:
    app = App(static_dir=public)

    proto = await request(app, path)
    assert proto.response_status == 404
    assert proto.response_file_path is None


@pytest.mark.asyncio
async def test_no_static_dir_by_default(
    public: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(public)
    proto = await request(App(), "/index.html")
    assert proto.response_status == 404


# --- Logging ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_access_log(caplog: pytest.LogCaptureFixture) -> None:
    app = App(log=True)
    app.get("/health", health)

    with caplog.at_level(logging.INFO, logger="arbor.app"):
        await request(app, "/health?verbose=1")
        await request(app, "/missing")

    messages = [r.getMessage() for r in caplog.records if r.name == "arbor.app"]
    assert len(messages) == 2
    assert "GET /health?verbose=1 | done in: " in messages[0]
    assert messages[0].endswith("| status: 200")
    assert messages[1].endswith("| status: 404")


@pytest.mark.asyncio
async def test_no_access_log_by_default(caplog: pytest.LogCaptureFixture) -> None:
    app = App()
    app.get("/health", health)

    with caplog.at_level(logging.INFO, logger="arbor.app"):
        await request(app, "/health")

    assert not [r for r in caplog.records if r.name == "arbor.app"]
