"""
Chatooly AI Tool Builder - live session server.
FastAPI + WebSocket gateway between the browser and the agent runtime,
plus file watching and static serving of the tool being built.

Run:  python -m web [--port 3001] [--dir /path/to/tool]
Open: http://localhost:3001
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from agent.attachments import AttachmentStager
from agent.runtime import AgentRuntime, ClaudeAgentRuntime
from agent.session import AgentSession
from baseline import BaselineStore
from config import agent_config, app_config, get_credentials_info, resolve_project_path
from credentials import CredentialState
from file_watcher import FileWatcher, PathFilter
from sessions import SessionRegistry
from web import chat
from web.broadcast import ChangeBroadcaster
from web.gateway import Gateway

logger = logging.getLogger(__name__)


def create_app(
    project_root: Optional[str] = None,
    runtime_factory: Optional[Callable[[], AgentRuntime]] = None,
    watch: Optional[bool] = None,
    has_api_key: Optional[Callable[[], bool]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    ``runtime_factory`` builds the agent runtime for each new AgentSession;
    by default every session talks to the agent SDK in ``project_root``.
    """
    root = os.path.abspath(os.path.expanduser(project_root or app_config.project_root))
    watch = app_config.watch_enabled if watch is None else watch

    path_filter = PathFilter(app_config.watch_patterns, app_config.ignore_patterns)
    baseline = BaselineStore(root, path_filter, resolve_project_path(app_config.baseline_dir, root))
    registry = SessionRegistry()
    broadcaster = ChangeBroadcaster(registry)
    stager = AttachmentStager()
    credentials = CredentialState()

    if runtime_factory is None:
        def runtime_factory() -> AgentRuntime:
            return ClaudeAgentRuntime(root, agent_config, credentials.env)

    def session_factory() -> AgentSession:
        return AgentSession(runtime_factory(), stager)

    gateway = Gateway(
        registry,
        session_factory,
        broadcaster=broadcaster,
        baseline=baseline,
        has_api_key=has_api_key or (lambda: credentials.has_key),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Capture the reset baseline and start the file watcher; on shutdown
        stop the watcher and abort every live session.
        """
        await credentials.refresh()
        await asyncio.to_thread(baseline.capture)
        watcher = None
        if watch:
            watcher = FileWatcher(root, broadcaster.broadcast, path_filter=path_filter)
            await watcher.start()
        app.state.watcher = watcher
        logger.info("Serving %s (%s)", root, get_credentials_info())
        try:
            yield
        finally:
            if watcher is not None:
                await watcher.stop()
            await gateway.shutdown()

    app = FastAPI(title=app_config.title, lifespan=lifespan)
    app.state.project_root = root
    app.state.registry = registry
    app.state.baseline = baseline
    app.state.gateway = gateway
    app.state.credentials = credentials
    app.state.watcher = None

    @app.middleware("http")
    async def no_cache_static(request: Request, call_next):
        """Serve tool files fresh so hot-reloaded assets are never stale; hide denied paths."""
        path = request.url.path
        if not path.startswith("/api/") and path_filter.denied(path.lstrip("/")):
            return JSONResponse({"detail": "Not Found"}, status_code=404)
        response = await call_next(request)
        if not path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        return response

    @app.get("/api/health")
    async def health(request: Request):
        return {
            "status": "ok",
            "hasApiKey": request.app.state.gateway.has_api_key(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "connections": len(request.app.state.registry),
        }

    app.include_router(chat.router)

    # Mounted last so it never shadows /api or /ws
    if os.path.isdir(root):
        app.mount("/", StaticFiles(directory=root, html=True), name="tool")

    return app


app = create_app()
