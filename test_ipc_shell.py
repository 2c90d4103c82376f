"""
Tests for the shell / tool-surface IPC bridge.
"""

import asyncio

import pytest

from client.connection import ChatClient, EntryStyle
from client.hot_reload import Document
from client.ipc import IpcBus, IpcChannel, IpcClosedError, tool_error_message
from client.shell import ShellSidebar
from client.tool import ToolSurface
from config import ClientConfig


async def _settle():
    for _ in range(3):
        await asyncio.sleep(0)


def _shell(bus, **kwargs):
    client = ChatClient(config=ClientConfig(server_url="ws://test/ws"))
    return ShellSidebar(client, bus=bus, channel_name="test-ipc", **kwargs)


# ── IpcChannel ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_post_reaches_peers_but_not_sender():
    bus = IpcBus()
    a, b, c = (IpcChannel("room", bus) for _ in range(3))
    other = IpcChannel("elsewhere", bus)
    inbox = {name: [] for name in "abco"}
    a.subscribe(inbox["a"].append)
    b.subscribe(inbox["b"].append)
    c.subscribe(inbox["c"].append)
    other.subscribe(inbox["o"].append)

    message = {"type": "file-changed", "file": "js/main.js"}
    assert a.post_message(message) == 2
    # delivery is asynchronous
    assert inbox["b"] == []
    await _settle()

    assert inbox["a"] == [] and inbox["o"] == []
    assert inbox["b"] == [message] and inbox["c"] == [message]
    assert inbox["b"][0] is not inbox["c"][0]


@pytest.mark.asyncio
async def test_closed_channel_misses_messages():
    bus = IpcBus()
    sender, receiver = IpcChannel("room", bus), IpcChannel("room", bus)
    got = []
    receiver.subscribe(got.append)

    sender.post_message({"type": "refresh-tool"})
    receiver.close()
    await _settle()
    assert got == []

    assert sender.post_message({"type": "refresh-tool"}) == 0
    with pytest.raises(IpcClosedError):
        receiver.post_message({"type": "tool-ready"})


# ── Shell auto-refresh ────────────────────────────────────

@pytest.mark.asyncio
async def test_markup_change_refreshes_tool_once_after_result():
    bus = IpcBus()
    shell = _shell(bus, refresh_delay=0.02)
    surface = ToolSurface(Document(), bus=bus, channel_name="test-ipc")

    shell.client.handle_message({"type": "thinking", "message": "..."})
    shell.client.handle_message({"type": "file-changed", "file": "index.html",
                                 "eventType": "changed", "fileType": "markup"})
    shell.client.handle_message({"type": "file-changed", "file": "js/main.js",
                                 "eventType": "changed", "fileType": "main-script"})
    assert shell.changed_files == {"index.html", "js/main.js"}

    shell.client.handle_message({"type": "result", "subtype": "success", "metrics": {}})
    assert shell.changed_files == set()
    assert shell.refresh_pending
    shell.schedule_refresh()

    await asyncio.sleep(0.08)
    await _settle()
    assert shell.refresh_count == 1
    assert surface.reload_count == 1
    assert not shell.refresh_pending
    shell.close()
    surface.detach()


@pytest.mark.asyncio
@pytest.mark.parametrize("files, terminal", [
    (["js/main.js", "css/style.css"], {"type": "result", "subtype": "success", "metrics": {}}),
    (["index.html"], {"type": "result", "subtype": "error_during_execution", "metrics": {}}),
    (["index.html"], {"type": "error", "message": "Agent error: boom"}),
    (["index.html"], {"type": "cancelled", "message": "Agent session was cancelled"}),
])
async def test_no_refresh_without_successful_markup_turn(files, terminal):
    bus = IpcBus()
    scheduled = []
    shell = _shell(bus, call_later=lambda delay, cb: scheduled.append(delay))

    for file in files:
        shell.handle_server_message({"type": "file-changed", "file": file, "eventType": "changed"})
    shell.handle_server_message(terminal)

    assert scheduled == []
    assert shell.changed_files == set()
    shell.close()


@pytest.mark.asyncio
async def test_reset_complete_refreshes_immediately():
    bus = IpcBus()
    shell = _shell(bus)
    surface = ToolSurface(Document(), bus=bus, channel_name="test-ipc")

    shell.client.handle_message({"type": "reset-complete", "files": ["index.html"]})
    await _settle()

    assert shell.refresh_count == 1
    assert surface.reload_count == 1
    shell.close()
    surface.detach()


@pytest.mark.asyncio
async def test_file_changes_forwarded_to_tool_surface():
    bus = IpcBus()
    shell = _shell(bus)
    doc = Document()
    doc.add_script("/js/ui.js")
    surface = ToolSurface(doc, bus=bus, channel_name="test-ipc")

    shell.handle_server_message({"type": "file-changed", "file": "js/ui.js", "eventType": "changed"})
    await _settle()
    await surface.drain()

    [script] = doc.scripts
    assert script.src.startswith("/js/ui.js?t=")
    assert surface.reload_count == 0
    shell.close()
    surface.detach()


@pytest.mark.asyncio
async def test_markup_change_notice_reaches_the_surface():
    bus = IpcBus()
    shell = _shell(bus)
    doc = Document()
    doc.add_script("/js/main.js")
    surface = ToolSurface(doc, bus=bus, channel_name="test-ipc")

    shell.handle_server_message({"type": "file-changed", "file": "index.html", "eventType": "changed"})
    await _settle()
    await surface.drain()

    assert surface.notices == ["HTML changed: index.html - Refresh to see changes"]
    assert [s.src for s in doc.scripts] == ["/js/main.js"]
    shell.close()
    surface.detach()


# ── Tool surface reports ──────────────────────────────────

@pytest.mark.asyncio
async def test_tool_ready_and_errors_reach_the_shell():
    bus = IpcBus()
    shell = _shell(bus)

    async def broken_loader(tag):
        raise RuntimeError("bad script")

    doc = Document(broken_loader)
    doc.add_script("/js/main.js")
    surface = ToolSurface(doc, bus=bus, channel_name="test-ipc")

    surface.start()
    await _settle()
    assert shell.tool_ready

    await surface.hot_reload.handle_change({"type": "file-changed", "file": "js/main.js", "eventType": "changed"})
    await _settle()

    errors = shell.client.log.of_style(EntryStyle.ERROR)
    assert [e.text for e in errors] == ["Tool error: Failed to reload script: js/main.js"]
    shell.close()
    surface.detach()


@pytest.mark.asyncio
async def test_detached_surface_misses_refresh():
    bus = IpcBus()
    shell = _shell(bus)
    surface = ToolSurface(Document(), bus=bus, channel_name="test-ipc")
    surface.detach()

    shell.refresh_tool()
    await _settle()
    assert surface.reload_count == 0

    # a raw tool-error from any surface is rendered with its detail
    IpcChannel("test-ipc", bus).post_message(tool_error_message("canvas missing"))
    await _settle()
    assert shell.client.log.of_style(EntryStyle.ERROR)[-1].text == "Tool error: canvas missing"
    shell.close()
