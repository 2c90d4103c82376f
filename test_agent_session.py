"""
Tests for AgentSession: resumption, terminal latch, cancellation and
attachment cleanup.
"""

import asyncio
import base64
import os

import pytest

from agent.attachments import Attachment, AttachmentStager
from agent.events import Cancelled, Error, Result, SystemInit, Thinking
from agent.session import AgentSession, ChatTurn, SessionBusyError
from conftest import FakeRuntime

PNG = Attachment(media_type="image/png", data=b"\x89PNG\r\n\x1a\nfake")


def _collector():
    events = []

    async def on_event(event):
        events.append(event)

    return events, on_event


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def test_chat_turn_latch_first_wins():
    turn = ChatTurn("hi")
    assert turn.settle(Result())
    assert not turn.settle(Cancelled())
    assert not turn.settle(Error(message="late"))
    assert isinstance(turn.terminal, Result)


@pytest.mark.asyncio
async def test_stream_order_and_token_capture(staging_dir):
    runtime = FakeRuntime()
    session = AgentSession(runtime, AttachmentStager(str(staging_dir)))
    events, on_event = _collector()

    outcome = await session.start("add a button", on_event=on_event)

    assert [e.type for e in events] == ["thinking", "system", "assistant", "tool_use", "result"]
    assert isinstance(events[0], Thinking)
    assert isinstance(outcome, Result) and outcome.success
    assert session.resume_token == "sess-123"
    assert not session.busy


@pytest.mark.asyncio
async def test_second_turn_resumes_same_token(staging_dir):
    runtime = FakeRuntime()
    session = AgentSession(runtime, AttachmentStager(str(staging_dir)))

    await session.start("first")
    events, on_event = _collector()
    await session.start("second", on_event=on_event)

    assert runtime.calls == [None, "sess-123"]
    assert session.resume_token == "sess-123"
    # init is only announced for a new conversation
    assert not any(isinstance(e, SystemInit) for e in events)


@pytest.mark.asyncio
async def test_token_not_replaced_by_later_init(staging_dir):
    runtime = FakeRuntime()
    session = AgentSession(runtime, AttachmentStager(str(staging_dir)))
    await session.start("first")
    runtime.session_id = "other"
    await session.start("second")
    assert session.resume_token == "sess-123"


@pytest.mark.asyncio
async def test_busy_session_rejects_second_turn(staging_dir):
    session = AgentSession(FakeRuntime(hold=True), AttachmentStager(str(staging_dir)))
    task = asyncio.create_task(session.start("long"))
    await _wait_for(lambda: session.busy)

    with pytest.raises(SessionBusyError):
        await session.start("again")

    assert session.abort()
    await task


@pytest.mark.asyncio
async def test_abort_yields_cancelled_never_result(staging_dir):
    session = AgentSession(FakeRuntime(hold=True), AttachmentStager(str(staging_dir)))
    events, on_event = _collector()
    task = asyncio.create_task(session.start("long", on_event=on_event))
    await _wait_for(lambda: any(e.type == "tool_use" for e in events))

    assert session.abort() is True
    outcome = await task

    assert isinstance(outcome, Cancelled)
    terminals = [e for e in events if e.terminal]
    assert len(terminals) == 1
    assert terminals[0].type == "cancelled"
    assert terminals[0].to_message() == {"type": "cancelled", "message": "Agent session was cancelled"}


@pytest.mark.asyncio
async def test_abort_after_result_is_noop(staging_dir):
    session = AgentSession(FakeRuntime(), AttachmentStager(str(staging_dir)))
    outcome = await session.start("quick")
    assert isinstance(outcome, Result)
    assert session.abort() is False


@pytest.mark.asyncio
async def test_abort_racing_with_result_keeps_result(staging_dir):
    session = AgentSession(FakeRuntime(), AttachmentStager(str(staging_dir)))
    seen = []
    aborts = []

    async def on_event(event):
        seen.append(event)
        if event.type == "tool_use":
            # The result lands first, then the user hits cancel
            session.current_turn.settle(Result(subtype="success"))
            aborts.append(session.abort())

    outcome = await session.start("race", on_event=on_event)
    assert aborts == [False]
    assert isinstance(outcome, Result)
    assert [e.type for e in seen if e.terminal] == ["result"]


@pytest.mark.asyncio
async def test_runtime_failure_becomes_error_event(staging_dir):
    session = AgentSession(FakeRuntime(fail="model overloaded"), AttachmentStager(str(staging_dir)))
    events, on_event = _collector()

    outcome = await session.start("boom", on_event=on_event)

    assert isinstance(outcome, Error)
    assert outcome.message == "Agent error: model overloaded"
    assert [e.type for e in events if e.terminal] == ["error"]
    # token and session survive an agent error
    assert session.resume_token == "sess-123"


@pytest.mark.asyncio
async def test_attachments_referenced_by_absolute_path(staging_dir):
    runtime = FakeRuntime()
    session = AgentSession(runtime, AttachmentStager(str(staging_dir)))
    seen_paths = []

    async def on_event(event):
        if event.type == "system":
            seen_paths.extend(session.staged_paths)

    await session.start("what is this?", [PNG], on_event)

    assert len(seen_paths) == 1
    assert os.path.isabs(seen_paths[0])
    assert seen_paths[0].endswith(".png")
    assert seen_paths[0] in runtime.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("scenario", ["success", "error", "cancel"])
async def test_staged_attachments_removed(staging_dir, scenario):
    runtime = FakeRuntime(hold=(scenario == "cancel"), fail=("bad" if scenario == "error" else None))
    session = AgentSession(runtime, AttachmentStager(str(staging_dir)))
    staged = []

    async def on_event(event):
        if event.type == "system":
            staged.extend(session.staged_paths)
            assert all(os.path.exists(p) for p in staged)

    task = asyncio.create_task(session.start("look", [PNG, PNG], on_event))
    if scenario == "cancel":
        await _wait_for(lambda: len(staged) == 2)
        session.abort()
    await task

    assert len(staged) == 2
    assert not any(os.path.exists(p) for p in staged)
    assert os.listdir(staging_dir) == []


@pytest.mark.asyncio
async def test_cleanup_failure_does_not_break_turn(staging_dir, monkeypatch):
    stager = AttachmentStager(str(staging_dir))

    def refuse(path):
        raise PermissionError("read-only")

    monkeypatch.setattr(os, "remove", refuse)
    session = AgentSession(FakeRuntime(), stager)
    outcome = await session.start("look", [PNG])
    monkeypatch.undo()

    assert isinstance(outcome, Result)


@pytest.mark.asyncio
async def test_stager_writes_bytes_with_extension(staging_dir):
    stager = AttachmentStager(str(staging_dir))
    paths = stager.stage([Attachment("image/jpeg", base64.b64decode("/9j/4AAQ"))])
    assert paths[0].endswith(".jpg")
    with open(paths[0], "rb") as f:
        assert f.read() == base64.b64decode("/9j/4AAQ")
    assert stager.cleanup(paths) == []
