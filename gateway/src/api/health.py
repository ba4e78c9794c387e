"""
Liveness and landing page endpoints.

``GET /healthz`` always answers 200 with a plain ``OK`` body and needs no
collaborators, so it keeps answering while a slow device poll holds an
inverter lock.  ``GET /`` serves a minimal HTML page linking to the
metrics endpoint and the control panel.

CHANGELOG:
- 2026-03-12: Link the control panel (STORY-016)
- 2026-03-07: Initial creation (STORY-010)

TODO:
- None
"""

from html import escape

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

router = APIRouter(tags=["health"])

_LANDING_PAGE = """<html>
<head><title>axpert-gateway</title></head>
<body>
<h1>axpert-gateway</h1>
<p><a href="{metrics_path}">Metrics</a></p>
<p><a href="/control">Control panel</a></p>
</body>
</html>
"""


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz() -> str:
    """Return a constant liveness response.

    Returns:
        str: ``"OK"``.
    """
    return "OK"


@router.get("/", response_class=HTMLResponse)
async def index(request: Request) -> str:
    """Serve the landing page with a link to the metrics path."""
    metrics_path = request.app.state.settings.metrics_path
    return _LANDING_PAGE.format(metrics_path=escape(metrics_path, quote=True))
