"""
AgentSession: one resumable conversation with the agent runtime.

A session runs at most one ChatTurn at a time. Each turn streams
``thinking``, then the runtime's assistant / tool_use / system events, then
exactly one terminal event (result, error or cancelled). The first terminal
signal latched on the turn wins; later ones are discarded.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .attachments import Attachment, AttachmentStager, attach_to_prompt
from .events import AgentEvent, Cancelled, Error, SystemInit, Thinking
from .runtime import AgentRuntime

logger = logging.getLogger(__name__)

EventCallback = Callable[[AgentEvent], Awaitable[None]]


class SessionBusyError(Exception):
    """A ChatTurn is already in flight on this session"""
    pass


class ChatTurn:
    """One user request and its streamed response."""

    def __init__(self, prompt: str, attachments: Optional[List[Attachment]] = None):
        self.prompt = prompt
        self.attachments = list(attachments or [])
        self.staged_paths: List[str] = []
        self.terminal: Optional[AgentEvent] = None

    @property
    def done(self) -> bool:
        return self.terminal is not None

    def settle(self, event: AgentEvent) -> bool:
        """Latch ``event`` as the outcome. Returns False if already settled."""
        if self.terminal is not None:
            return False
        self.terminal = event
        return True


class AgentSession:
    """Holds the resumption token, abort handle and staged attachments of one conversation."""

    def __init__(self, runtime: AgentRuntime, stager: Optional[AttachmentStager] = None):
        self.runtime = runtime
        self.stager = stager or AttachmentStager()
        self.resume_token: Optional[str] = None
        self._turn: Optional[ChatTurn] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._turn is not None

    @property
    def current_turn(self) -> Optional[ChatTurn]:
        return self._turn

    @property
    def staged_paths(self) -> List[str]:
        return list(self._turn.staged_paths) if self._turn else []

    async def start(
        self,
        prompt: str,
        attachments: Optional[List[Attachment]] = None,
        on_event: Optional[EventCallback] = None,
    ) -> AgentEvent:
        """Run one ChatTurn, delivering every event to ``on_event``.

        Returns the terminal event. Raises SessionBusyError if a turn is
        already running.
        """
        if self._turn is not None:
            raise SessionBusyError("Agent is already running. Cancel first.")

        async def emit(event: AgentEvent) -> None:
            if on_event is not None:
                await on_event(event)

        turn = ChatTurn(prompt, attachments)
        self._turn = turn
        try:
            await emit(Thinking())

            if turn.attachments:
                turn.staged_paths = self.stager.stage(turn.attachments)
            full_prompt = attach_to_prompt(prompt, turn.staged_paths)

            # abort() may already have latched while thinking was sent
            if not turn.done:
                await self._run(turn, full_prompt, emit)
        finally:
            if turn.staged_paths:
                self.stager.cleanup(turn.staged_paths)
            self._consumer = None
            self._turn = None

        await emit(turn.terminal)
        return turn.terminal

    async def _run(self, turn: ChatTurn, prompt: str, emit: EventCallback) -> None:
        consumer = asyncio.ensure_future(self._consume(turn, prompt, emit))
        self._consumer = consumer
        try:
            await asyncio.wait({consumer})
        except asyncio.CancelledError:
            # Owner went away; stop the runtime too
            turn.settle(Cancelled())
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
            raise

        if consumer.cancelled():
            turn.settle(Cancelled())
        elif consumer.exception() is not None:
            exc = consumer.exception()
            logger.error("Agent error: %s", exc)
            turn.settle(Error(message=f"Agent error: {exc}"))
        elif not turn.done:
            turn.settle(Error(message="Agent error: runtime ended without a result"))

    async def _consume(self, turn: ChatTurn, prompt: str, emit: EventCallback) -> None:
        resumed = self.resume_token is not None
        async for event in self.runtime.stream(prompt, self.resume_token):
            if turn.done:
                break
            if event.terminal:
                turn.settle(event)
                break
            if isinstance(event, SystemInit):
                if event.session_id and self.resume_token is None:
                    self.resume_token = event.session_id
                    logger.info("Session ID captured: %s", self.resume_token)
                # Only new conversations announce init
                if resumed:
                    continue
            await emit(event)

    def abort(self) -> bool:
        """Cancel the in-flight turn.

        Returns True if the turn was cancelled, False if there was nothing
        to cancel or the turn had already produced its terminal event.
        """
        turn = self._turn
        if turn is None or not turn.settle(Cancelled()):
            return False
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
        logger.info("Agent turn cancelled")
        return True
