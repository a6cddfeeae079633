# stats_api.py: FastAPI + uvicorn, background server over the live ChatCore
import logging
import time
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse, JSONResponse

from engine.core import ChatCore

log = logging.getLogger("stats")


def build_app(core: ChatCore) -> FastAPI:
    app = FastAPI(title="AnonChat Stats")
    started = time.time()

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        stats = await core.snapshot()
        html = f"""
        <html><head><title>AnonChat Stats</title></head>
        <body style="font-family:system-ui;padding:16px;">
          <h1>AnonChat — Realtime Stats</h1>
          <ul>
            <li>Total users: <b>{stats.get('users_total', 0)}</b></li>
            <li>Premium active: <b>{stats.get('premium_active', 0)}</b></li>
            <li>Banned: <b>{stats.get('banned', 0)}</b></li>
            <li>Active chats: <b>{stats.get('active_chats', 0)}</b></li>
            <li>Waiting: <b>{stats.get('waiting', 0)}</b></li>
            <li>Matches (24h): <b>{stats.get('pairs_24h', 0)}</b></li>
            <li>Open reports: <b>{stats.get('reports_open', 0)}</b></li>
          </ul>
          <p><a href="/stats">/stats</a> (JSON)</p>
        </body></html>
        """
        return html

    @app.get("/stats", response_class=JSONResponse)
    async def stats() -> Dict[str, Any]:
        return await core.snapshot()

    @app.get("/healthz")
    async def healthz():
        return {"ok": True, "uptime": round(time.time() - started, 1)}

    return app


async def start_stats_server(core: ChatCore, host: str = "127.0.0.1", port: int = 8000):
    config = uvicorn.Config(build_app(core), host=host, port=port, loop="asyncio", log_level="info")
    server = uvicorn.Server(config)
    log.info("stats server on http://%s:%s/", host, port)
    await server.serve()
