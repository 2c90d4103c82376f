"""
Reconnecting WebSocket chat client.

Mirrors the browser sidebar: it owns the channel to the gateway, projects a
status (connecting / connected / thinking / disconnected), reconnects with a
linear backoff up to a fixed number of attempts, and sends a heartbeat ping
while the channel is open. Server messages are rendered into a ChatLog and
handed to any registered listeners (shell sidebar, hot-reload client).
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from config import ClientConfig, client_config

logger = logging.getLogger(__name__)


class ConnectionStatus:
    CONNECTING = "connecting"
    CONNECTED = "connected"
    THINKING = "thinking"
    DISCONNECTED = "disconnected"


class EntryStyle:
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_USE = "tool-use"
    SYSTEM = "system"
    ERROR = "error"


@dataclass
class LogEntry:
    style: str
    text: str


class ChatLog:
    """Ordered chat history; lives with the client, never with the tool surface."""

    def __init__(self):
        self.entries: List[LogEntry] = []
        self._listeners: List[Callable[[LogEntry], None]] = []

    def add(self, style: str, text: str) -> LogEntry:
        entry = LogEntry(style, text)
        self.entries.append(entry)
        for listener in list(self._listeners):
            listener(entry)
        return entry

    def subscribe(self, listener: Callable[[LogEntry], None]) -> None:
        self._listeners.append(listener)

    def of_style(self, style: str) -> List[LogEntry]:
        return [e for e in self.entries if e.style == style]

    def clear(self) -> None:
        self.entries.clear()

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


GIVE_UP_MESSAGE = "Could not connect to server. Please ensure the server is running (python -m web)"
NO_KEY_MESSAGE = "API key not configured. Add your ANTHROPIC_API_KEY to the .env file and restart the server."

Connector = Callable[[str], Awaitable[Any]]
CallLater = Callable[[float, Callable[[], None]], Any]
MessageListener = Callable[[Dict[str, Any]], None]
StatusListener = Callable[[str], None]


class ChatClient:
    """Client side of the /ws channel.

    Example::

        client = ChatClient("ws://127.0.0.1:3001/ws")
        await client.connect()
        await client.send_chat("Create a gradient generator")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        connector: Optional[Connector] = None,
        call_later: Optional[CallLater] = None,
        log: Optional[ChatLog] = None,
    ):
        self.config = config or client_config
        self.url = url or self.config.server_url
        self.log = log or ChatLog()
        self._connector = connector or websockets.connect
        self._call_later = call_later
        self._listeners: List[MessageListener] = []
        self._status_listeners: List[StatusListener] = []

        self.status = ConnectionStatus.DISCONNECTED
        self.reconnect_attempts = 0
        self.gave_up = False
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_handle = None
        self._closing = False

    # ── State projection ─────────────────────────────────────

    @property
    def connected(self) -> bool:
        return self._ws is not None and self.status in (ConnectionStatus.CONNECTED, ConnectionStatus.THINKING)

    @property
    def thinking(self) -> bool:
        return self.status == ConnectionStatus.THINKING

    @property
    def can_send(self) -> bool:
        return self.connected

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def add_status_listener(self, listener: StatusListener) -> None:
        """Called with the new status whenever it changes."""
        self._status_listeners.append(listener)

    def _set_status(self, status: str) -> None:
        if status == self.status:
            return
        logger.debug("Status %s -> %s", self.status, status)
        self.status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener failed for %s", status)

    # ── Channel lifecycle ────────────────────────────────────

    async def connect(self) -> bool:
        """Open the channel. A construction failure schedules a reconnect."""
        self._closing = False
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            ws = await self._connector(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.warning("WebSocket connection error: %s", e)
            self.handle_close()
            return False
        self.handle_open(ws)
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        return True

    def handle_open(self, ws: Any) -> None:
        logger.info("Connected to AI server")
        self._ws = ws
        self.reconnect_attempts = 0
        self.gave_up = False
        self._set_status(ConnectionStatus.CONNECTED)
        self._start_heartbeat()

    def handle_close(self) -> None:
        logger.info("Disconnected from AI server")
        self._ws = None
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._stop_heartbeat()
        if not self._closing:
            self.schedule_reconnect()

    def schedule_reconnect(self) -> Optional[float]:
        """Schedule the next attempt after ``base_delay * attempt``.

        Returns the delay, or None once the attempt cap is reached; the
        give-up message is logged only the first time.
        """
        if self.reconnect_attempts >= self.config.max_reconnect_attempts:
            if not self.gave_up:
                self.gave_up = True
                self.log.add(EntryStyle.ERROR, GIVE_UP_MESSAGE)
            return None

        self.reconnect_attempts += 1
        delay = self.config.reconnect_delay * self.reconnect_attempts
        logger.info(
            "Reconnecting in %.1fs (attempt %d/%d)",
            delay, self.reconnect_attempts, self.config.max_reconnect_attempts,
        )
        self._reconnect_handle = self._schedule(delay, self._reconnect)
        return delay

    def _schedule(self, delay: float, callback: Callable[[], None]) -> Any:
        if self._call_later is not None:
            return self._call_later(delay, callback)
        return asyncio.get_running_loop().call_later(delay, callback)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._ws is None and not self._closing:
            asyncio.ensure_future(self.connect())

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self.handle_message(raw)
        except ConnectionClosed:
            pass
        except Exception as e:
            logger.error("WebSocket error: %s", e)
        finally:
            if self._ws is ws:
                self.handle_close()

    async def close(self) -> None:
        self._closing = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._stop_heartbeat()
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.warning("Error closing WebSocket: %s", e)
        if self._reader_task is not None:
            self._reader_task.cancel()
            await asyncio.gather(self._reader_task, return_exceptions=True)
            self._reader_task = None
        self._set_status(ConnectionStatus.DISCONNECTED)

    # ── Heartbeat ────────────────────────────────────────────

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.ensure_future(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        # Fire-and-forget; a lost pong shows up only as a channel close
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            if self.connected:
                await self._send({"type": "ping"})

    # ── Outbound ─────────────────────────────────────────────

    async def _send(self, payload: Dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None:
            return False
        try:
            await ws.send(json.dumps(payload))
            return True
        except (ConnectionClosed, OSError) as e:
            logger.warning("Send failed: %s", e)
            return False

    async def send_chat(self, prompt: str, images: Optional[List[Dict[str, Any]]] = None) -> bool:
        """Send a chat request; refused while disconnected or while a turn is in flight."""
        text = (prompt or "").strip()
        images = list(images or [])
        if (not text and not images) or not self.can_send or self.thinking:
            return False

        display = f"{text or '(image)'} [{len(images)} image(s) attached]" if images else text
        self.log.add(EntryStyle.USER, display)
        message: Dict[str, Any] = {"type": "chat", "prompt": text or "What do you see in this image?"}
        if images:
            message["images"] = images
        return await self._send(message)

    async def cancel(self) -> bool:
        return await self._send({"type": "cancel"})

    async def reset(self) -> bool:
        return await self._send({"type": "reset"})

    # ── Inbound ──────────────────────────────────────────────

    def handle_message(self, raw: Any) -> Optional[Dict[str, Any]]:
        """Render one server message and pass it on to listeners."""
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else dict(raw)
        except (ValueError, TypeError) as e:
            logger.error("Error parsing message: %s", e)
            return None

        msg_type = data.get("type")
        logger.debug("Received: %s", msg_type)

        if msg_type == "connected":
            if not data.get("hasApiKey"):
                self.log.add(EntryStyle.SYSTEM, NO_KEY_MESSAGE)
        elif msg_type == "thinking":
            self._set_status(ConnectionStatus.THINKING)
        elif msg_type == "assistant":
            self.log.add(EntryStyle.ASSISTANT, data.get("content", ""))
        elif msg_type == "tool_use":
            self.log.add(EntryStyle.TOOL_USE, f"Using {data.get('tool')}...")
        elif msg_type == "result":
            self._end_turn()
            self.log.add(*_describe_result(data))
        elif msg_type == "system":
            if data.get("subtype") == "init":
                self.log.add(EntryStyle.SYSTEM, f"Agent initialized with {len(data.get('tools') or [])} tools")
        elif msg_type == "error":
            self._end_turn()
            self.log.add(EntryStyle.ERROR, data.get("message", "Unknown error"))
        elif msg_type == "cancelled":
            self._end_turn()
            # Cancellation is not an error
            self.log.add(EntryStyle.SYSTEM, data.get("message", "Cancelled"))
        elif msg_type == "reset-complete":
            self.log.add(EntryStyle.SYSTEM, "Tool reset to blank template")
        elif msg_type in ("file-changed", "pong"):
            pass
        else:
            logger.debug("Unknown message type: %s", msg_type)

        for listener in list(self._listeners):
            try:
                listener(data)
            except Exception:
                logger.exception("Message listener failed for %s", msg_type)
        return data

    def _end_turn(self) -> None:
        if self.status == ConnectionStatus.THINKING:
            self._set_status(ConnectionStatus.CONNECTED)


def _describe_result(data: Dict[str, Any]):
    metrics = data.get("metrics") or {}
    if data.get("subtype") == "success":
        cost = metrics.get("total_cost_usd") or 0.0
        return EntryStyle.SYSTEM, f"Task completed ({metrics.get('num_turns', 0)} turns, ${cost:.4f})"
    errors = data.get("errors") or []
    return EntryStyle.ERROR, f"{data.get('subtype')}: {', '.join(errors) or 'Unknown error'}"
