"""
Selective hot reload of a running tool surface.

The surface is modelled by ``Document``: an ordered list of script and
stylesheet elements, the re-render hooks the tool exposes (``render``,
``draw``) and a loader that fetches a script element. ``HotReloadClient``
patches scripts and stylesheets in place and only asks for a full refresh
when markup changes.
"""

import inspect
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from file_watcher import ChangeKind, FileRole, SCRIPT_ROLES, classify_file

logger = logging.getLogger(__name__)

# Scripts that run the reload machinery itself
SELF_SCRIPTS = ("ai-sidebar.js", "tool-ipc.js", "shell-ai-sidebar.js")

RERENDER_HOOKS = ("render", "draw")

_element_ids = itertools.count(1)


@dataclass(eq=False)
class ScriptTag:
    src: str
    id: int = field(default_factory=lambda: next(_element_ids))


@dataclass(eq=False)
class StylesheetLink:
    href: str
    id: int = field(default_factory=lambda: next(_element_ids))


Element = Union[ScriptTag, StylesheetLink]
ScriptLoader = Callable[[ScriptTag], Awaitable[None]]


async def _load_immediately(tag: ScriptTag) -> None:
    return None


class Document:
    """Minimal model of the tool page's head."""

    def __init__(self, loader: Optional[ScriptLoader] = None):
        self.elements: List[Element] = []
        self.hooks: Dict[str, Callable[[], Any]] = {}
        self._loader = loader or _load_immediately

    def add_script(self, src: str) -> ScriptTag:
        tag = ScriptTag(src)
        self.elements.append(tag)
        return tag

    def add_stylesheet(self, href: str) -> StylesheetLink:
        link = StylesheetLink(href)
        self.elements.append(link)
        return link

    def expose(self, name: str, fn: Callable[[], Any]) -> None:
        self.hooks[name] = fn

    @property
    def scripts(self) -> List[ScriptTag]:
        return [e for e in self.elements if isinstance(e, ScriptTag)]

    @property
    def stylesheets(self) -> List[StylesheetLink]:
        return [e for e in self.elements if isinstance(e, StylesheetLink)]

    def find_script(self, prefix: str) -> Optional[ScriptTag]:
        return next((s for s in self.scripts if s.src.startswith(prefix)), None)

    def find_stylesheet(self, prefix: str) -> Optional[StylesheetLink]:
        return next((s for s in self.stylesheets if s.href.startswith(prefix)), None)

    def insert_before(self, new: Element, ref: Element) -> None:
        self.elements.insert(self.elements.index(ref), new)

    def remove(self, element: Element) -> None:
        if element in self.elements:
            self.elements.remove(element)

    async def load(self, tag: ScriptTag) -> None:
        """Resolve once the script has loaded; raise if it failed."""
        await self._loader(tag)


class ReloadAction:
    SCRIPT_RELOADED = "script-reloaded"
    STYLE_RELOADED = "style-reloaded"
    REFRESH_NEEDED = "refresh-needed"
    FAILED = "failed"
    NOT_FOUND = "not-found"
    SKIPPED = "skipped"


Notifier = Callable[[str, str], None]


class HotReloadClient:

    def __init__(
        self,
        document: Document,
        notify: Optional[Notifier] = None,
        on_error: Optional[Callable[[str], None]] = None,
        clock: Optional[Callable[[], float]] = None,
        skip: tuple = SELF_SCRIPTS,
    ):
        self.document = document
        self._notify = notify
        self._on_error = on_error
        self._clock = clock or time.time
        self.skip = skip

    def _cache_bust(self, path: str) -> str:
        return f"{path}?t={int(self._clock() * 1000)}"

    def _tell(self, style: str, text: str) -> None:
        if self._notify is not None:
            self._notify(style, text)

    async def handle_change(self, event: Dict[str, Any]) -> str:
        """Apply one ``file-changed`` message. Returns the ReloadAction taken."""
        file = event.get("file", "")
        kind = event.get("eventType", ChangeKind.CHANGED)
        role = event.get("fileType") or classify_file(file)
        logger.info("File %s: %s", kind, file)

        if role == FileRole.MARKUP:
            # Markup is never patched in place
            self._tell("system", f"HTML changed: {file} - Refresh to see changes")
            return ReloadAction.REFRESH_NEEDED
        if kind == ChangeKind.REMOVED:
            return ReloadAction.SKIPPED
        if role in SCRIPT_ROLES:
            if file.rsplit("/", 1)[-1] in self.skip:
                return ReloadAction.SKIPPED
            return await self.reload_script(file)
        if role == FileRole.STYLE:
            return self.reload_stylesheet(file)
        return ReloadAction.SKIPPED

    async def reload_script(self, path: str) -> str:
        normalized = path if path.startswith("/") else "/" + path
        existing = self.document.find_script(normalized)
        if existing is None:
            return ReloadAction.NOT_FOUND

        replacement = ScriptTag(self._cache_bust(normalized))
        self.document.insert_before(replacement, existing)
        try:
            await self.document.load(replacement)
        except Exception as e:
            # Keep the old script running
            self.document.remove(replacement)
            message = f"Failed to reload script: {path}"
            logger.error("%s (%s)", message, e)
            if self._on_error is not None:
                self._on_error(message)
            return ReloadAction.FAILED

        self.document.remove(existing)
        logger.info("Reloaded: %s", path)
        await self._rerender()
        self._tell("system", f"Script reloaded: {path}")
        return ReloadAction.SCRIPT_RELOADED

    async def _rerender(self) -> None:
        for name in RERENDER_HOOKS:
            hook = self.document.hooks.get(name)
            if hook is None:
                continue
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Re-render hook %s failed", name)

    def reload_stylesheet(self, path: str) -> str:
        normalized = path if path.startswith("/") else "/" + path
        link = self.document.find_stylesheet(normalized)
        if link is None:
            return ReloadAction.NOT_FOUND
        link.href = self._cache_bust(normalized)
        logger.info("Reloaded CSS: %s", path)
        return ReloadAction.STYLE_RELOADED
