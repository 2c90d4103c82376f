"""
Gateway: dispatches /ws control messages onto per-connection AgentSessions.

Every connection gets at most one AgentSession, created lazily on the first
chat and resumed afterwards. A ChatTurn runs as its own task so the
connection keeps serving cancel / ping while the agent works, and other
connections are never blocked.
"""

import asyncio
import json
import logging
from typing import Callable, Dict, List, Optional

from agent.attachments import AttachmentError, normalize_attachments
from agent.events import AgentEvent
from agent.session import AgentSession, SessionBusyError
from baseline import BaselineStore
from sessions import Connection, SessionRegistry
from web.broadcast import ChangeBroadcaster
from web.protocol import (
    CancelRequest,
    ChatRequest,
    PingRequest,
    ProtocolError,
    ResetRequest,
    connected_message,
    error_message,
    parse_inbound,
    pong_message,
    reset_complete_message,
)

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "ANTHROPIC_API_KEY not configured. Please add your API key to the .env file."
BUSY_MESSAGE = "Agent is already running. Cancel first."


class Gateway:

    def __init__(
        self,
        registry: SessionRegistry,
        session_factory: Callable[[], AgentSession],
        broadcaster: Optional[ChangeBroadcaster] = None,
        baseline: Optional[BaselineStore] = None,
        has_api_key: Callable[[], bool] = lambda: True,
    ):
        self.registry = registry
        self.session_factory = session_factory
        self.broadcaster = broadcaster or ChangeBroadcaster(registry)
        self.baseline = baseline
        self.has_api_key = has_api_key
        self._turns: Dict[str, asyncio.Task] = {}

    # ── Lifecycle ─────────────────────────────────────────────

    async def connect(self, conn: Connection) -> None:
        self.registry.register(conn)
        await conn.send_json(connected_message(self.has_api_key()))

    async def disconnect(self, conn: Connection) -> None:
        """Abort the in-flight turn and forget the connection and its session."""
        conn.close()
        session = self.registry.unregister(conn)
        if session is not None and session.abort():
            logger.info("Agent turn aborted for %s", conn.id)
        task = self._turns.pop(conn.id, None)
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        for conn in self.registry.connections():
            await self.disconnect(conn)

    def turn_running(self, conn: Connection) -> bool:
        task = self._turns.get(conn.id)
        return task is not None and not task.done()

    # ── Dispatch ──────────────────────────────────────────────

    async def handle(self, conn: Connection, raw: str) -> None:
        """Handle one inbound frame. Faults become ``error`` events; the channel stays open."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            await conn.send_json(error_message("Invalid JSON"))
            return

        try:
            msg = parse_inbound(data)
            logger.info("Received: %s from %s", data.get("type"), conn.id)

            if isinstance(msg, PingRequest):
                await conn.send_json(pong_message())
            elif isinstance(msg, ChatRequest):
                await self._handle_chat(conn, msg)
            elif isinstance(msg, CancelRequest):
                self._handle_cancel(conn)
            elif isinstance(msg, ResetRequest):
                await self._handle_reset(conn)
        except ProtocolError as e:
            await conn.send_json(error_message(str(e)))
        except Exception as e:
            logger.exception("Error processing message from %s", conn.id)
            await conn.send_json(error_message(str(e) or type(e).__name__))

    async def _handle_chat(self, conn: Connection, msg: ChatRequest) -> None:
        if not msg.prompt and not msg.images:
            await conn.send_json(error_message("Empty prompt"))
            return
        if not self.has_api_key():
            await conn.send_json(error_message(MISSING_KEY_MESSAGE))
            return

        existing = self.registry.lookup(conn)
        if self.turn_running(conn) or (existing is not None and existing.busy):
            await conn.send_json(error_message(BUSY_MESSAGE))
            return

        try:
            attachments = normalize_attachments(msg.images)
        except AttachmentError as e:
            await conn.send_json(error_message(f"Attachment error: {e}"))
            return

        session = self.registry.get_or_create_session(conn, self.session_factory)
        task = asyncio.create_task(self._run_turn(conn, session, msg.prompt, attachments))
        self._turns[conn.id] = task

        def _forget(t: asyncio.Task, conn_id: str = conn.id) -> None:
            if self._turns.get(conn_id) is t:
                del self._turns[conn_id]

        task.add_done_callback(_forget)

    async def _run_turn(self, conn: Connection, session: AgentSession, prompt: str, attachments) -> None:
        async def relay(event: AgentEvent) -> None:
            await conn.send_json(event.to_message())

        try:
            outcome = await session.start(prompt, attachments, relay)
            logger.info("Turn finished for %s: %s", conn.id, outcome.type)
        except SessionBusyError as e:
            await conn.send_json(error_message(str(e)))
        except Exception as e:
            logger.exception("Agent error for %s", conn.id)
            await conn.send_json(error_message(f"Agent error: {e}"))

    def _handle_cancel(self, conn: Connection) -> None:
        session = self.registry.lookup(conn)
        if session is not None and session.abort():
            logger.info("Agent session cancelled for %s", conn.id)
        else:
            logger.debug("Cancel from %s with no turn in flight", conn.id)

    async def _handle_reset(self, conn: Connection) -> None:
        if self.baseline is None:
            await conn.send_json(error_message("Reset is not available: no baseline captured"))
            return

        # Reset never runs under an active turn; the session itself is kept
        session = self.registry.lookup(conn)
        if session is not None and session.abort():
            logger.info("Agent turn aborted for reset (%s)", conn.id)
        task = self._turns.get(conn.id)
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

        files: List[str] = await asyncio.to_thread(self.baseline.restore)
        logger.info("Reset complete: %d file(s) restored", len(files))
        await self.broadcaster.broadcast_message(reset_complete_message(files))
