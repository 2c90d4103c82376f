"""
Tests for the reconnecting chat client: backoff, heartbeat, status and log rendering.
"""

import asyncio
import json

import pytest

from client.connection import (
    GIVE_UP_MESSAGE,
    NO_KEY_MESSAGE,
    ChatClient,
    ConnectionStatus,
    EntryStyle,
)
from config import ClientConfig
from conftest import FakeSocket


class _Handle:
    cancelled = False

    def cancel(self):
        self.cancelled = True


class RecordingScheduler:
    """Records reconnect delays instead of arming real timers."""

    def __init__(self):
        self.delays = []
        self.callbacks = []

    def __call__(self, delay, callback):
        self.delays.append(delay)
        self.callbacks.append(callback)
        return _Handle()


def _refusing_connector():
    attempts = []

    async def connect(url):
        attempts.append(url)
        raise ConnectionRefusedError("refused")

    connect.attempts = attempts
    return connect


def _config(**overrides):
    fields = dict(
        server_url="ws://test/ws",
        reconnect_delay=3.0,
        max_reconnect_attempts=5,
        heartbeat_interval=30.0,
    )
    fields.update(overrides)
    return ClientConfig(**fields)


@pytest.mark.asyncio
async def test_linear_backoff_then_give_up_once():
    scheduler = RecordingScheduler()
    connector = _refusing_connector()
    client = ChatClient(config=_config(), connector=connector, call_later=scheduler)

    for _ in range(7):
        assert await client.connect() is False

    assert scheduler.delays == [3.0, 6.0, 9.0, 12.0, 15.0]
    assert client.gave_up
    assert client.status == ConnectionStatus.DISCONNECTED
    assert [e.text for e in client.log.of_style(EntryStyle.ERROR)] == [GIVE_UP_MESSAGE]
    assert len(connector.attempts) == 7
    await client.close()


@pytest.mark.asyncio
async def test_successful_open_resets_attempts():
    scheduler = RecordingScheduler()
    sockets = []
    fail = {"count": 2}

    async def connector(url):
        if fail["count"]:
            fail["count"] -= 1
            raise OSError("down")
        sock = FakeSocket()
        sockets.append(sock)
        return sock

    client = ChatClient(config=_config(), connector=connector, call_later=scheduler)
    await client.connect()
    await client.connect()
    assert client.reconnect_attempts == 2

    assert await client.connect() is True
    assert client.connected
    assert client.reconnect_attempts == 0
    assert not client.gave_up

    # server drops the channel: next attempt starts from the base delay
    sockets[0].drop()
    for _ in range(50):
        if not client.connected:
            break
        await asyncio.sleep(0.01)
    assert client.status == ConnectionStatus.DISCONNECTED
    assert scheduler.delays == [3.0, 6.0, 3.0]
    await client.close()


@pytest.mark.asyncio
async def test_close_does_not_reconnect():
    scheduler = RecordingScheduler()
    sock = FakeSocket()

    async def connector(url):
        return sock

    client = ChatClient(config=_config(), connector=connector, call_later=scheduler)
    await client.connect()
    await client.close()

    assert sock.closed
    assert scheduler.delays == []
    assert client.status == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_heartbeat_pings_while_open():
    sock = FakeSocket()

    async def connector(url):
        return sock

    client = ChatClient(config=_config(heartbeat_interval=0.02), connector=connector)
    await client.connect()
    await asyncio.sleep(0.09)
    await client.close()

    pings = [m for m in sock.sent if m == {"type": "ping"}]
    assert len(pings) >= 2


@pytest.mark.asyncio
async def test_send_chat_guards():
    sock = FakeSocket()

    async def connector(url):
        return sock

    client = ChatClient(config=_config(), connector=connector)
    assert await client.send_chat("hello") is False

    await client.connect()
    assert await client.send_chat("   ") is False
    assert await client.send_chat("Make a spiral tool") is True
    assert sock.sent[-1] == {"type": "chat", "prompt": "Make a spiral tool"}

    client.handle_message(json.dumps({"type": "thinking", "message": "Agent is processing..."}))
    assert client.thinking
    assert await client.send_chat("another") is False

    client.handle_message({"type": "cancelled", "message": "Agent session was cancelled"})
    image = {"type": "base64", "media_type": "image/png", "data": "AAAA"}
    assert await client.send_chat("", [image]) is True
    assert sock.sent[-1] == {"type": "chat", "prompt": "What do you see in this image?", "images": [image]}
    assert client.log.of_style(EntryStyle.USER)[-1].text == "(image) [1 image(s) attached]"
    await client.close()


@pytest.mark.asyncio
async def test_cancel_and_reset_frames():
    sock = FakeSocket()

    async def connector(url):
        return sock

    client = ChatClient(config=_config(), connector=connector)
    assert await client.cancel() is False
    await client.connect()
    await client.cancel()
    await client.reset()
    assert sock.sent == [{"type": "cancel"}, {"type": "reset"}]
    await client.close()


def test_server_messages_render_into_log():
    client = ChatClient(config=_config())
    client.status = ConnectionStatus.CONNECTED
    seen = []
    client.add_listener(seen.append)

    for msg in [
        {"type": "connected", "message": "hi", "hasApiKey": False},
        {"type": "thinking", "message": "Agent is processing..."},
        {"type": "system", "subtype": "init", "tools": ["Read", "Write"], "model": "m", "session_id": "s"},
        {"type": "assistant", "content": "Working on it"},
        {"type": "tool_use", "tool": "Edit", "input": {}},
        {"type": "file-changed", "file": "index.html", "eventType": "changed", "fileType": "markup"},
        {"type": "result", "subtype": "success", "result": "ok",
         "metrics": {"duration_ms": 10, "total_cost_usd": 0.0123, "num_turns": 2}},
    ]:
        client.handle_message(json.dumps(msg))

    assert [(e.style, e.text) for e in client.log] == [
        (EntryStyle.SYSTEM, NO_KEY_MESSAGE),
        (EntryStyle.SYSTEM, "Agent initialized with 2 tools"),
        (EntryStyle.ASSISTANT, "Working on it"),
        (EntryStyle.TOOL_USE, "Using Edit..."),
        (EntryStyle.SYSTEM, "Task completed (2 turns, $0.0123)"),
    ]
    assert client.status == ConnectionStatus.CONNECTED
    assert len(seen) == 7


def test_failed_result_and_errors():
    client = ChatClient(config=_config())
    client.status = ConnectionStatus.THINKING
    client.handle_message({"type": "result", "subtype": "error_max_turns", "errors": ["too long"]})
    client.handle_message({"type": "error", "message": "Agent error: boom"})
    client.handle_message({"type": "reset-complete", "files": ["index.html"]})
    client.handle_message("{garbage")

    assert client.status == ConnectionStatus.CONNECTED
    assert [(e.style, e.text) for e in client.log] == [
        (EntryStyle.ERROR, "error_max_turns: too long"),
        (EntryStyle.ERROR, "Agent error: boom"),
        (EntryStyle.SYSTEM, "Tool reset to blank template"),
    ]


def test_failing_listener_does_not_break_others():
    client = ChatClient(config=_config())
    seen = []

    def broken(msg):
        raise RuntimeError("listener bug")

    client.add_listener(broken)
    client.add_listener(seen.append)
    client.handle_message({"type": "pong"})
    assert seen == [{"type": "pong"}]


@pytest.mark.asyncio
async def test_status_listeners_see_each_change_once():
    sock = FakeSocket()

    async def connector(url):
        return sock

    client = ChatClient("ws://test/ws", connector=connector, call_later=RecordingScheduler())
    seen = []
    client.add_status_listener(seen.append)

    await client.connect()
    client.handle_message({"type": "thinking"})
    client.handle_message({"type": "thinking"})
    sock.drop()
    await asyncio.sleep(0.05)

    assert seen == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.THINKING,
        ConnectionStatus.DISCONNECTED,
    ]
    await client.close()


# ── Terminal front end ────────────────────────────────────

@pytest.mark.asyncio
async def test_cli_run_fails_when_channel_drops_mid_turn(monkeypatch):
    from client import cli

    sock = FakeSocket()
    opened = []

    async def fake_connect(url):
        opened.append(url)
        if len(opened) > 1:
            raise OSError("connection refused")
        return sock

    monkeypatch.setattr("client.connection.websockets.connect", fake_connect)
    task = asyncio.create_task(cli.run("ws://test/ws", "build a slider", [], False))

    for _ in range(200):
        if any(m["type"] == "chat" for m in sock.sent):
            break
        await asyncio.sleep(0.005)
    sock.push({"type": "thinking"})
    sock.drop()

    assert await asyncio.wait_for(task, 2) == 1
    assert [m["type"] for m in sock.sent] == ["chat"]
    assert len(opened) == 1


@pytest.mark.asyncio
async def test_cli_run_succeeds_on_result(monkeypatch):
    from client import cli

    sock = FakeSocket()

    async def fake_connect(url):
        return sock

    monkeypatch.setattr("client.connection.websockets.connect", fake_connect)
    task = asyncio.create_task(cli.run("ws://test/ws", "build a slider", [], False))

    for _ in range(200):
        if any(m["type"] == "chat" for m in sock.sent):
            break
        await asyncio.sleep(0.005)
    sock.push({"type": "result", "subtype": "success", "metrics": {"num_turns": 1}})

    assert await asyncio.wait_for(task, 2) == 0
