"""
Connection / AgentSession registry for the gateway.

Each browser WebSocket is wrapped in a Connection and maps to at most one
AgentSession. The registry is the only shared mutable structure on the
server; it is mutated by the gateway's own handlers on a single event loop.
"""

import itertools
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from agent.session import AgentSession

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class Connection:
    """One browser duplex channel.

    Sends go through ``send_json``, which silently drops messages once the
    socket has closed or failed; the first failed send marks the connection
    dead.
    """

    def __init__(self, ws: Any, conn_id: Optional[str] = None):
        self.ws = ws
        self.id = conn_id or f"conn-{next(_connection_ids)}"

    @property
    def alive(self) -> bool:
        return self.ws is not None

    async def send_json(self, data: Dict[str, Any]) -> bool:
        _ws = self.ws
        if _ws is None:
            return False
        try:
            await _ws.send_json(data)
            return True
        except Exception as e:
            logger.debug("Send to %s failed, marking closed: %s", self.id, e)
            self.ws = None          # mark disconnected on first failure
            return False

    def close(self) -> None:
        self.ws = None

    def __repr__(self) -> str:
        return f"Connection({self.id}, alive={self.alive})"


class SessionRegistry:
    """Explicit Connection -> AgentSession map."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._sessions: Dict[str, AgentSession] = {}

    def register(self, conn: Connection) -> None:
        self._connections[conn.id] = conn
        logger.info("Client connected: %s (%d total)", conn.id, len(self._connections))

    def unregister(self, conn: Connection) -> Optional[AgentSession]:
        """Forget the connection. Returns its session, if any, for cleanup."""
        self._connections.pop(conn.id, None)
        session = self._sessions.pop(conn.id, None)
        logger.info("Client disconnected: %s (%d total)", conn.id, len(self._connections))
        return session

    def lookup(self, conn: Connection) -> Optional[AgentSession]:
        return self._sessions.get(conn.id)

    def get_or_create_session(self, conn: Connection, factory: Callable[[], AgentSession]) -> AgentSession:
        """Reuse the connection's session, creating it on first use."""
        if conn.id not in self._connections:
            raise KeyError(f"Connection not registered: {conn.id}")
        session = self._sessions.get(conn.id)
        if session is None:
            session = factory()
            self._sessions[conn.id] = session
            logger.info("Agent session created for %s", conn.id)
        return session

    def drop_session(self, conn: Connection) -> Optional[AgentSession]:
        return self._sessions.pop(conn.id, None)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def sessions(self) -> Iterator[AgentSession]:
        return iter(list(self._sessions.values()))

    def __contains__(self, conn: Connection) -> bool:
        return conn.id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
