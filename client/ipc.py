"""
Named at-most-once message bus between the shell and the tool surface.

Semantics follow a browser BroadcastChannel: a message posted on a channel
is delivered asynchronously to every *other* open channel with the same
name, never back to the sender. Nothing is queued or retried; a surface
that is detached (for example mid-reload) simply misses the message, so
consumers must tolerate loss.
"""

import asyncio
import copy
import logging
from typing import Any, Callable, Dict, List, Optional

from config import client_config

logger = logging.getLogger(__name__)

TOOL_READY = "tool-ready"
FILE_CHANGED = "file-changed"
REFRESH_TOOL = "refresh-tool"
TOOL_ERROR = "tool-error"

Handler = Callable[[Dict[str, Any]], None]


class IpcClosedError(RuntimeError):
    """post_message on a closed channel"""
    pass


class IpcBus:
    """Registry of open channels, keyed by name."""

    def __init__(self):
        self._channels: Dict[str, List["IpcChannel"]] = {}

    def _attach(self, channel: "IpcChannel") -> None:
        self._channels.setdefault(channel.name, []).append(channel)

    def _detach(self, channel: "IpcChannel") -> None:
        peers = self._channels.get(channel.name, [])
        if channel in peers:
            peers.remove(channel)
        if not peers:
            self._channels.pop(channel.name, None)

    def peers(self, channel: "IpcChannel") -> List["IpcChannel"]:
        return [c for c in self._channels.get(channel.name, []) if c is not channel]


default_bus = IpcBus()


class IpcChannel:

    def __init__(self, name: Optional[str] = None, bus: Optional[IpcBus] = None):
        self.name = name or client_config.ipc_channel
        self.bus = bus or default_bus
        self.closed = False
        self._handlers: List[Handler] = []
        self.bus._attach(self)

    def subscribe(self, handler: Handler) -> None:
        self._handlers.append(handler)

    def post_message(self, message: Dict[str, Any]) -> int:
        """Queue delivery to every other open channel. Returns the recipient count."""
        if self.closed:
            raise IpcClosedError(f"Channel {self.name} is closed")
        loop = asyncio.get_running_loop()
        peers = self.bus.peers(self)
        for peer in peers:
            # Each recipient gets its own copy
            loop.call_soon(peer._deliver, copy.deepcopy(message))
        return len(peers)

    def _deliver(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                logger.exception("IPC handler failed for %s", message.get("type"))

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.bus._detach(self)


# ============================================================
# Message builders
# ============================================================

def tool_ready_message() -> Dict[str, Any]:
    return {"type": TOOL_READY}


def file_changed_message(file: str, event_type: str) -> Dict[str, Any]:
    return {"type": FILE_CHANGED, "file": file, "eventType": event_type}


def refresh_tool_message() -> Dict[str, Any]:
    return {"type": REFRESH_TOOL}


def tool_error_message(message: str) -> Dict[str, Any]:
    return {"type": TOOL_ERROR, "data": {"message": message}}
