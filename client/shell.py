"""
Shell side of the IPC bridge.

The shell owns the chat client and its history. It forwards file changes
to the tool surface, tracks which files changed during the current turn and
refreshes the tool surface (never itself) when markup changed.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Set

from client.connection import ChatClient, EntryStyle
from client.ipc import (
    TOOL_ERROR,
    TOOL_READY,
    IpcBus,
    IpcChannel,
    file_changed_message,
    refresh_tool_message,
)
from config import client_config
from file_watcher import FileRole, classify_file

logger = logging.getLogger(__name__)

CallLater = Callable[[float, Callable[[], None]], Any]


class ShellSidebar:

    def __init__(
        self,
        client: ChatClient,
        bus: Optional[IpcBus] = None,
        channel_name: Optional[str] = None,
        refresh_delay: Optional[float] = None,
        call_later: Optional[CallLater] = None,
    ):
        self.client = client
        self.channel = IpcChannel(channel_name, bus)
        self.refresh_delay = client_config.auto_refresh_delay if refresh_delay is None else refresh_delay
        self._call_later = call_later
        self.changed_files: Set[str] = set()
        self.tool_ready = False
        self.refresh_count = 0
        self._pending_refresh = None

        self.channel.subscribe(self.handle_ipc)
        client.add_listener(self.handle_server_message)

    @property
    def refresh_pending(self) -> bool:
        return self._pending_refresh is not None

    def handle_server_message(self, data: Dict[str, Any]) -> None:
        msg_type = data.get("type")
        if msg_type == "file-changed":
            file = data.get("file", "")
            self.changed_files.add(file)
            self.channel.post_message(file_changed_message(file, data.get("eventType", "changed")))
        elif msg_type == "result":
            if data.get("subtype") == "success" and self._markup_changed():
                self.schedule_refresh()
            self.changed_files.clear()
        elif msg_type in ("error", "cancelled"):
            self.changed_files.clear()
        elif msg_type == "reset-complete":
            self.refresh_tool()

    def _markup_changed(self) -> bool:
        return any(classify_file(f) == FileRole.MARKUP for f in self.changed_files)

    def schedule_refresh(self) -> None:
        """Refresh the tool surface once after the settle delay."""
        if self._pending_refresh is not None:
            return
        if self._call_later is not None:
            self._pending_refresh = self._call_later(self.refresh_delay, self._fire_refresh)
        else:
            self._pending_refresh = asyncio.get_running_loop().call_later(self.refresh_delay, self._fire_refresh)

    def _fire_refresh(self) -> None:
        self._pending_refresh = None
        self.refresh_tool()

    def refresh_tool(self) -> None:
        self.refresh_count += 1
        logger.info("Refreshing tool surface")
        self.channel.post_message(refresh_tool_message())

    def handle_ipc(self, message: Dict[str, Any]) -> None:
        msg_type = message.get("type")
        if msg_type == TOOL_READY:
            # Safe to miss; nothing waits on it
            self.tool_ready = True
            logger.info("Tool surface loaded")
        elif msg_type == TOOL_ERROR:
            detail = (message.get("data") or {}).get("message") or "Unknown error"
            self.client.log.add(EntryStyle.ERROR, f"Tool error: {detail}")
        else:
            logger.debug("IPC message: %s", msg_type)

    def close(self) -> None:
        if self._pending_refresh is not None:
            self._pending_refresh.cancel()
            self._pending_refresh = None
        self.channel.close()
