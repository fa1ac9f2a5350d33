"""Static file serving for the served tree."""

import html
import logging
import os
import stat
from pathlib import Path
from urllib.parse import quote

import anyio
from starlette.datastructures import URL
from starlette.exceptions import HTTPException
from starlette.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)

ERROR_TEXT = {
    401: "401 unauthorized",
    403: "403 forbidden",
    404: "404 page not found",
    405: "405 method not allowed",
}


class SiteFiles(StaticFiles):
    """StaticFiles in html mode with directory listings.

    Directories with an ``index.html`` serve it; directories without one get a
    listing of their entries. Errors are answered with a short plain-text body
    instead of raising, so the app can be called directly outside of routing.
    """

    def __init__(self, directory: str | os.PathLike[str]):
        super().__init__(directory=directory, html=True, check_dir=True)
        self.root = Path(directory)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except HTTPException as exc:
            response = PlainTextResponse(
                ERROR_TEXT.get(exc.status_code, str(exc.detail)),
                status_code=exc.status_code,
                headers=exc.headers,
            )
            await response(scope, receive, send)

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code != 404:
                raise
            full_path, stat_result = await anyio.to_thread.run_sync(self.lookup_path, path)
            if stat_result is None or not stat.S_ISDIR(stat_result.st_mode):
                raise
            if not scope["path"].endswith("/"):
                url = URL(scope=scope)
                return RedirectResponse(url=url.replace(path=url.path + "/"), status_code=301)
            return await anyio.to_thread.run_sync(self.directory_listing, full_path)

    def directory_listing(self, full_path: str) -> Response:
        """Render an HTML listing of the entries in ``full_path``."""
        try:
            entries = sorted(os.scandir(full_path), key=lambda entry: entry.name)
        except OSError as e:
            logger.warning(f"Error reading directory {full_path}: {e}")
            return PlainTextResponse("Error reading directory", status_code=500)

        lines = ["<!doctype html>", '<meta name="viewport" content="width=device-width">', "<pre>"]
        for entry in entries:
            name = entry.name + "/" if entry.is_dir() else entry.name
            lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>')
        lines.append("</pre>")
        return HTMLResponse("\n".join(lines) + "\n")
