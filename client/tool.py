"""
Tool surface side of the IPC bridge.

Runs inside the sandboxed tool page: announces readiness, hot-reloads
forwarded file changes, reloads itself on request and reports failures
back to the shell. It holds no chat state.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from client.hot_reload import Document, HotReloadClient, Notifier
from client.ipc import (
    FILE_CHANGED,
    REFRESH_TOOL,
    IpcBus,
    IpcChannel,
    tool_error_message,
    tool_ready_message,
)

logger = logging.getLogger(__name__)


class ToolSurface:

    def __init__(
        self,
        document: Document,
        bus: Optional[IpcBus] = None,
        channel_name: Optional[str] = None,
        reload_page: Optional[Callable[[], None]] = None,
        notify: Optional[Notifier] = None,
    ):
        self.document = document
        self.channel = IpcChannel(channel_name, bus)
        self.notices: List[str] = []
        self.hot_reload = HotReloadClient(document, notify=notify or self._notice, on_error=self.report_error)
        self._reload_page = reload_page
        self.reload_count = 0
        self._tasks: Set[asyncio.Task] = set()
        self.channel.subscribe(self.handle_message)

    def start(self) -> None:
        self.channel.post_message(tool_ready_message())
        logger.info("Tool IPC initialized")

    def handle_message(self, message: Dict[str, Any]) -> None:
        msg_type = message.get("type")
        if msg_type == REFRESH_TOOL:
            self.reload()
        elif msg_type == FILE_CHANGED:
            task = asyncio.ensure_future(self.hot_reload.handle_change(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.debug("Tool IPC received: %s", msg_type)

    def reload(self) -> None:
        """Reload the whole tool page; chat state is unaffected."""
        self.reload_count += 1
        if self._reload_page is not None:
            self._reload_page()

    def _notice(self, style: str, text: str) -> None:
        logger.info("Tool notice: %s", text)
        self.notices.append(text)

    def report_error(self, message: str) -> None:
        if not self.channel.closed:
            self.channel.post_message(tool_error_message(message))

    async def drain(self) -> None:
        """Wait for in-progress hot reloads."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def detach(self) -> None:
        self.channel.close()
