"""
Headless client for the live session server.

- connection: reconnecting chat client, status and chat log
- hot_reload: in-place script / stylesheet reload of a tool surface
- ipc: named at-most-once bus between shell and tool surface
- shell: shell sidebar (owns chat state, refreshes the tool surface)
- tool: tool surface (hot reload, reports errors to the shell)
"""

from client.connection import ChatClient, ChatLog, ConnectionStatus, EntryStyle, LogEntry
from client.hot_reload import Document, HotReloadClient, ReloadAction, ScriptTag, StylesheetLink
from client.ipc import IpcBus, IpcChannel, IpcClosedError
from client.shell import ShellSidebar
from client.tool import ToolSurface

__all__ = [
    "ChatClient",
    "ChatLog",
    "ConnectionStatus",
    "EntryStyle",
    "LogEntry",
    "Document",
    "HotReloadClient",
    "ReloadAction",
    "ScriptTag",
    "StylesheetLink",
    "IpcBus",
    "IpcChannel",
    "IpcClosedError",
    "ShellSidebar",
    "ToolSurface",
]
