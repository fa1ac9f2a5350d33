"""Rewriting HTML responses to subscribe pages to live reload."""

import logging

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import Message, Send

from hotserve.api.routes.hotreload import RELOAD_PATH

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
CLOSING_BODY = b"</body>"

RELOAD_SCRIPT = f"""
<script>
  (function() {{
    const evtSource = new EventSource("{RELOAD_PATH}");
    evtSource.onmessage = function(e) {{
      if (e.data === "reload") {{
        console.log("Reloading page...");
        location.reload();
      }}
    }};
    evtSource.onerror = function() {{
      console.log("EventSource error. Closing connection.");
      evtSource.close();
    }};
  }})();
</script>
"""


def is_html(content_type: str) -> bool:
    content_type = content_type.lower()
    return any(kind in content_type for kind in HTML_CONTENT_TYPES)


def inject_reload_script(body: bytes, script: str = RELOAD_SCRIPT) -> bytes:
    """Insert ``script`` before the first ``</body>``, or append it if there is none."""
    encoded = script.encode("utf-8")
    if CLOSING_BODY in body:
        return body.replace(CLOSING_BODY, encoded + CLOSING_BODY, 1)
    return body + encoded


class ResponseInterceptor:
    """ASGI ``send`` wrapper that can rewrite a response body.

    Successful HTML responses are held back until the last body chunk, then
    sent with the reload script injected and ``Content-Length`` recomputed.
    Anything else is forwarded to the client untouched as it is written.
    """

    def __init__(self, send: Send, script: str = RELOAD_SCRIPT):
        self._send = send
        self.script = script
        self.status: int | None = None
        self.buffering = False
        self.rewritten = False
        self._start: Message | None = None
        self._body = bytearray()

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            content_type = Headers(raw=message.get("headers", [])).get("content-type", "")
            if self.status == 200 and is_html(content_type):
                self._start = message
                self.buffering = True
                return
            await self._send(message)
            return

        if message["type"] == "http.response.body" and self.buffering:
            self._body.extend(message.get("body", b""))
            if not message.get("more_body", False):
                await self._send_rewritten()
            return

        await self._send(message)

    async def _send_rewritten(self) -> None:
        assert self._start is not None
        body = inject_reload_script(bytes(self._body), self.script)
        headers = MutableHeaders(raw=list(self._start.get("headers", [])))
        headers["content-length"] = str(len(body))
        self.buffering = False
        self.rewritten = True
        await self._send({**self._start, "headers": headers.raw})
        await self._send({"type": "http.response.body", "body": body, "more_body": False})

    async def close(self) -> None:
        """Flush a response the handler left unfinished, unmodified."""
        if not self.buffering or self._start is None:
            return
        logger.debug("Response ended without a final body chunk, sending it unmodified")
        self.buffering = False
        await self._send(self._start)
        await self._send({"type": "http.response.body", "body": bytes(self._body), "more_body": False})
