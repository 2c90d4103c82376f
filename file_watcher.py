"""
Project file watcher for live updates.

Watches the tool files (scripts, markup, styles) under the project root,
coalesces bursts of events per path with a trailing debounce window and
hands one classified FileChangeEvent per settled path to a callback.
"""

import asyncio
import logging
import os
import posixpath
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import pathspec
from watchfiles import Change, awatch

from config import app_config

logger = logging.getLogger(__name__)


class ChangeKind:
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


_KIND_FROM_WATCHFILES = {
    Change.added: ChangeKind.ADDED,
    Change.modified: ChangeKind.CHANGED,
    Change.deleted: ChangeKind.REMOVED,
}


class FileRole:
    MAIN_SCRIPT = "main-script"
    UI_SCRIPT = "ui-script"
    SIDEBAR_SCRIPT = "sidebar-script"
    SCRIPT = "script"
    MARKUP = "markup"
    STYLE = "style"
    OTHER = "other"


SCRIPT_ROLES = (FileRole.MAIN_SCRIPT, FileRole.UI_SCRIPT, FileRole.SIDEBAR_SCRIPT, FileRole.SCRIPT)


def classify_file(path: str) -> str:
    """Classify a project-relative path so consumers can pick targeted vs full reload."""
    name = posixpath.basename(path.replace("\\", "/")).lower()
    if name.endswith(".js"):
        if name == "main.js":
            return FileRole.MAIN_SCRIPT
        if name == "ui.js":
            return FileRole.UI_SCRIPT
        if name == "ai-sidebar.js":
            return FileRole.SIDEBAR_SCRIPT
        return FileRole.SCRIPT
    if name.endswith((".html", ".htm")):
        return FileRole.MARKUP
    if name.endswith(".css"):
        return FileRole.STYLE
    return FileRole.OTHER


@dataclass(frozen=True)
class FileChangeEvent:
    """One settled filesystem mutation, relative to the project root"""
    path: str
    kind: str
    role: str

    def to_message(self) -> Dict[str, str]:
        return {
            "type": "file-changed",
            "file": self.path,
            "eventType": self.kind,
            "fileType": self.role,
        }


class PathFilter:
    """Allow-list / deny-list matcher using gitwildmatch patterns."""

    def __init__(self, watch_patterns: List[str], ignore_patterns: List[str],
                 exclude_dirs: Optional[List[str]] = None):
        self.watch_patterns = list(watch_patterns)
        self.ignore_patterns = list(ignore_patterns)
        self.exclude_dirs: List[str] = []
        for rel_dir in exclude_dirs or []:
            self.exclude(rel_dir)
        self._allow = pathspec.PathSpec.from_lines("gitwildmatch", self.watch_patterns)
        self._deny = pathspec.PathSpec.from_lines("gitwildmatch", self.ignore_patterns)

    def exclude(self, rel_dir: str) -> None:
        """Never match anything under ``rel_dir`` (relative to the walked root)."""
        rel_dir = rel_dir.replace("\\", "/").strip("/")
        if rel_dir and rel_dir not in self.exclude_dirs:
            self.exclude_dirs.append(rel_dir)

    def _excluded(self, rel_path: str) -> bool:
        return any(rel_path == d or rel_path.startswith(d + "/") for d in self.exclude_dirs)

    def denied(self, rel_path: str) -> bool:
        return self._deny.match_file(rel_path.replace("\\", "/").lstrip("/"))

    def matches(self, rel_path: str) -> bool:
        rel_path = rel_path.replace("\\", "/").lstrip("/")
        if not rel_path or rel_path.startswith("../"):
            return False
        if self._excluded(rel_path):
            return False
        if self._deny.match_file(rel_path):
            return False
        return self._allow.match_file(rel_path)

    def walk(self, root: str) -> List[str]:
        """List every existing file under ``root`` that passes the filter."""
        found = []
        for dirpath, dirs, files in os.walk(root):
            dirs[:] = [d for d in dirs if d not in (".git", "node_modules")]
            for fname in files:
                rel = os.path.relpath(os.path.join(dirpath, fname), root).replace(os.sep, "/")
                if self.matches(rel):
                    found.append(rel)
        found.sort()
        return found


EmitCallback = Callable[[FileChangeEvent], Awaitable[None]]


class Debouncer:
    """Trailing per-path debounce.

    Every push restarts the window for that path; when the window elapses
    without another push, a single event carrying the latest kind is emitted.
    Paths are independent of each other.
    """

    def __init__(self, window_ms: int, emit: EmitCallback,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.window = max(window_ms, 0) / 1000.0
        self._emit = emit
        self._loop = loop
        self._pending: Dict[str, Tuple[str, asyncio.TimerHandle]] = {}
        self._tasks: set = set()

    @property
    def pending_paths(self) -> List[str]:
        return sorted(self._pending)

    def push(self, path: str, kind: str) -> None:
        loop = self._loop or asyncio.get_running_loop()
        previous = self._pending.pop(path, None)
        if previous is not None:
            previous[1].cancel()
        handle = loop.call_later(self.window, self._fire, path)
        self._pending[path] = (kind, handle)

    def _fire(self, path: str) -> None:
        entry = self._pending.pop(path, None)
        if entry is None:
            return
        event = FileChangeEvent(path=path, kind=entry[0], role=classify_file(path))
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event: FileChangeEvent) -> None:
        logger.info("File %s: %s (%s)", event.kind, event.path, event.role)
        try:
            await self._emit(event)
        except Exception:
            logger.exception("File change handler failed for %s", event.path)

    def cancel(self) -> None:
        for _, handle in self._pending.values():
            handle.cancel()
        self._pending.clear()


class FileWatcher:
    """Async watcher over the project root built on watchfiles.

    Example::

        async def on_change(event):
            print(event.path, event.kind, event.role)

        watcher = FileWatcher("/path/to/project", on_change)
        await watcher.start()
        ...
        await watcher.stop()
    """

    RESTART_DELAY = 1.0

    def __init__(
        self,
        project_root: str,
        on_change: EmitCallback,
        watch_patterns: Optional[List[str]] = None,
        ignore_patterns: Optional[List[str]] = None,
        debounce_ms: Optional[int] = None,
        path_filter: Optional[PathFilter] = None,
    ):
        self.project_root = os.path.abspath(project_root)
        self.filter = path_filter or PathFilter(
            watch_patterns if watch_patterns is not None else app_config.watch_patterns,
            ignore_patterns if ignore_patterns is not None else app_config.ignore_patterns,
        )
        self.debounce_ms = app_config.watch_debounce_ms if debounce_ms is None else debounce_ms
        self._debouncer = Debouncer(self.debounce_ms, on_change)
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def relative(self, abs_path: str) -> str:
        return os.path.relpath(abs_path, self.project_root).replace(os.sep, "/")

    def accepts(self, change: Change, abs_path: str) -> bool:
        """watch_filter hook: only allow-listed, non-denied paths pass."""
        return self.filter.matches(self.relative(abs_path))

    def handle_changes(self, changes) -> None:
        """Feed one raw watchfiles batch into the debouncer."""
        for change, abs_path in changes:
            try:
                rel = self.relative(abs_path)
                if not self.filter.matches(rel):
                    continue
                self._debouncer.push(rel, _KIND_FROM_WATCHFILES.get(change, ChangeKind.CHANGED))
            except Exception:
                logger.exception("File watcher error on %s", abs_path)

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._watch_loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._debouncer.cancel()

    async def _watch_loop(self) -> None:
        logger.info("File watcher ready - monitoring %s", ", ".join(self.filter.watch_patterns))
        while not self._stop_event.is_set():
            try:
                async for changes in awatch(
                    self.project_root,
                    watch_filter=self.accepts,
                    debounce=50,
                    stop_event=self._stop_event,
                ):
                    self.handle_changes(changes)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Watcher failure is logged and the watch restarted
                logger.error("File watcher error: %s", e)
                await asyncio.sleep(self.RESTART_DELAY)
