# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "arbor[server,compress]",
# ]
#
# [tool.uv.sources]
# arbor = { path = "../", editable = true }
# ///
"""Demo server.

Static files from ./public, a catch-all echo route and an api router with
nested sub-routers.
"""

import logging

from arbor import App, Next, Request, Response, Router, format_routes
from arbor.middleware.compress import compress

PORT = 4000


async def home(req: Request, res: Response, next: Next) -> None:
    res.send("Welcome home")


async def echo(req: Request, res: Response, next: Next) -> None:
    words = req.path.split("/")[2:]  # drop "" and "echo"
    message = " ".join(w for w in words if w).replace("%20", " ").replace("+", " ")
    if not message:
        res.send("Add words to the url to make it say stuff. E.g. /echo/hello/world")
    elif message.lower() == "hello world":
        res.send("Come on! That's too easy.")
    else:
        res.send(message)


async def body_log(req: Request, res: Response, next: Next) -> None:
    logging.getLogger("demo").info("%s body: %r", req.url, await req.body())
    await next()


def api_router() -> Router:
    router = Router()

    async def health(req: Request, res: Response, next: Next) -> None:
        res.send({"message": "As you can see, I'm healthy"})

    async def form(req: Request, res: Response, next: Next) -> None:
        res.send({"you sent": await req.body()})

    async def query(req: Request, res: Response, next: Next) -> None:
        res.send(req.query)

    async def deepest(req: Request, res: Response, next: Next) -> None:
        res.send({"alert": "This is the deepest router"})

    router.get("/health", health)
    router.post("/form", body_log, form)
    router.get("/query", query)

    deeper = Router()
    deeper.handle("/deepest", deepest)
    deep = Router()
    deep.mount("/deeper", deeper)
    router.mount("/deep", deep)
    return router


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    app = App(log=True, static_dir="public")
    app.use(compress())
    app.handle("/", home)
    app.all("echo", echo)
    app.mount("/api", api_router())

    print(format_routes(app.root))
    app.listen(PORT)


if __name__ == "__main__":
    main()
