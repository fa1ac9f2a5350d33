"""Top-level request dispatch.

Requests whose path ends with an inject-eligible extension go straight to the
static files through a :class:`ResponseInterceptor`. Everything else falls
through to the application routes: the reload stream, then plain static
serving.
"""

from collections.abc import Sequence

from starlette.types import ASGIApp, Receive, Scope, Send

from hotserve.api.interceptor import ResponseInterceptor
from hotserve.config import has_suffix

# Extensions that let a server send a file without passing its bytes through send().
FILE_SEND_EXTENSIONS = ("http.response.pathsend", "http.response.zerocopysend")


class ReloadInjectionMiddleware:
    """Route inject-eligible requests through the response interceptor."""

    def __init__(self, app: ASGIApp, static: ASGIApp, inject_exts: Sequence[str]):
        self.app = app
        self.static = static
        self.inject_exts = tuple(inject_exts)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not has_suffix(scope["path"], self.inject_exts):
            await self.app(scope, receive, send)
            return

        if scope["method"] != "GET":
            await self.static(scope, receive, send)
            return

        extensions = {
            name: value
            for name, value in scope.get("extensions", {}).items()
            if name not in FILE_SEND_EXTENSIONS
        }
        interceptor = ResponseInterceptor(send)
        await self.static({**scope, "extensions": extensions}, receive, interceptor.send)
        await interceptor.close()
