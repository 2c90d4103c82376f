"""Fan-out of server-wide events (file changes, resets) to every connection."""

import logging
from typing import Any, Dict

from file_watcher import FileChangeEvent
from sessions import SessionRegistry

logger = logging.getLogger(__name__)


class ChangeBroadcaster:
    """Best-effort delivery: closed or failing channels are skipped, never retried."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def broadcast(self, event: FileChangeEvent) -> int:
        return await self.broadcast_message(event.to_message())

    async def broadcast_message(self, message: Dict[str, Any]) -> int:
        """Send ``message`` to every live connection. Returns the delivery count."""
        delivered = 0
        for conn in self.registry.connections():
            if not conn.alive:
                continue
            if await conn.send_json(message):
                delivered += 1
        logger.debug("Broadcast %s to %d client(s)", message.get("type"), delivered)
        return delivered
