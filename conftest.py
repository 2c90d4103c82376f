"""
Shared pytest fixtures: a scripted agent runtime and a small tool project.
"""

import asyncio
import json
import os
from typing import List, Optional

import pytest

from agent.events import AgentEvent, Assistant, Result, SystemInit, ToolUse
from agent.runtime import AgentRuntimeError


class FakeRuntime:
    """Scripted AgentRuntime: init, the given events, optional hold or failure, then a result."""

    def __init__(
        self,
        events: Optional[List[AgentEvent]] = None,
        session_id: str = "sess-123",
        hold: bool = False,
        fail: Optional[str] = None,
        result: Optional[Result] = None,
    ):
        self.events = events if events is not None else [
            Assistant(content="Adding a button"),
            ToolUse(tool="Write", input={"file_path": "index.html"}),
        ]
        self.session_id = session_id
        self.hold = hold
        self.fail = fail
        self.result = result or Result(
            subtype="success", result="Done", duration_ms=12, total_cost_usd=0.0123, num_turns=2,
        )
        self.calls = []
        self.prompts: List[str] = []

    async def stream(self, prompt: str, resume_token: Optional[str] = None):
        self.calls.append(resume_token)
        self.prompts.append(prompt)
        yield SystemInit(session_id=self.session_id, tools=["Read", "Write", "Edit"], model="test-model")
        for event in self.events:
            yield event
        if self.hold:
            await asyncio.sleep(30)
        if self.fail:
            raise AgentRuntimeError(self.fail)
        yield self.result


class FakeSocket:
    """Stands in for a websockets client connection."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    def push(self, message: dict) -> None:
        self._incoming.put_nowait(json.dumps(message))

    def drop(self) -> None:
        self._incoming.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def tool_project(tmp_path):
    """A minimal generated tool plus files the server must never expose or watch."""
    root = tmp_path / "tool"
    (root / "js").mkdir(parents=True)
    (root / "css").mkdir()
    (root / "server").mkdir()
    (root / "index.html").write_text(
        '<html><head><link rel="stylesheet" href="/css/style.css"></head>'
        '<body><canvas id="chatooly-canvas"></canvas><script src="/js/main.js"></script></body></html>'
    )
    (root / "js" / "main.js").write_text("function render() {}\n")
    (root / "js" / "ui.js").write_text("// controls\n")
    (root / "css" / "style.css").write_text("body { margin: 0; }\n")
    (root / "server" / "system-prompt.md").write_text("# Custom prompt\n")
    (root / ".env").write_text("ANTHROPIC_API_KEY=secret\n")
    return root


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / "staging"
    os.makedirs(path)
    return path
