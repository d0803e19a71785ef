"""Static dashboard served alongside the JSON API."""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.staticfiles import StaticFiles

logger = logging.getLogger("hoctap.web")

STATIC_DIR = Path(__file__).resolve().parent / "static"

_MISSING_DASHBOARD = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>HocTap API</title></head>
<body>
<h1>HocTap API</h1>
<p>The dashboard assets are not installed. The JSON API is available under <code>/api/users</code>.</p>
</body>
</html>
"""


def register_ui_routes(app: FastAPI, *, static_dir: Path = STATIC_DIR) -> None:
    """Serve ``index.html`` at ``/`` and the remaining assets under ``/static``."""

    if static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
    else:
        logger.warning("Static directory %s does not exist; dashboard assets will not be served", static_dir)

    index_path = static_dir / "index.html"

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    async def dashboard():
        if not index_path.is_file():
            return HTMLResponse(_MISSING_DASHBOARD, status_code=404)
        return FileResponse(index_path, media_type="text/html")


__all__ = ["STATIC_DIR", "register_ui_routes"]
