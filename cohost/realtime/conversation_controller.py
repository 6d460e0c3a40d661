"""
Conversation Orchestrator Module

Consumes the event queue one event at a time and drives the two-tier
pipeline:

1. Snapshot shared state and the fact listing
2. Decision tier (summary, fact changes, response gate)
3. Apply the summary, then fact removals, then fact additions
4. Stop on a negative gate or inside the reply cooldown
5. Otherwise dispatch the reply tier as a detached task: generate, check
   length, send to chat, record in history

Decision calls never overlap. A reply may still be in flight while the next
decision runs; it works from its own snapshot and updates history and the
cooldown only after the message is sent. That overlap is accepted: two
replies dispatched before the first one lands can both be sent.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional, Set

from cohost.config import settings
from cohost.core.chat import ChatSink
from cohost.errors import CoHostError, ValidationError
from cohost.logger import get_logger
from .agents import DecisionAgent, ReplyAgent
from .cancellation import CancellationToken, TokenCancelled
from .events import ChatEvent, EventQueue
from .facts import FactStore
from .memory import ConversationSnapshot, ConversationState

logger = get_logger(__name__)


class ProcessOutcome(Enum):
    """What happened to one event."""
    NO_RESPONSE = auto()      # Gate was negative
    COOLDOWN = auto()         # Gate positive, reply suppressed
    REPLY_DISPATCHED = auto() # Reply tier started
    FAILED = auto()           # Decision stage failed


@dataclass
class OrchestratorConfig:
    """Configuration for the conversation orchestrator."""
    reply_cooldown_s: float = 30.0
    max_message_length: int = 500

    # Await the reply inline instead of detaching it
    wait_for_reply: bool = False

    @classmethod
    def from_settings(cls) -> "OrchestratorConfig":
        return cls(
            reply_cooldown_s=settings.conversation.reply_cooldown_s,
            max_message_length=settings.conversation.max_message_length,
        )


class ConversationOrchestrator:
    """
    Single consumer of the event queue.

    Usage:
        orchestrator = ConversationOrchestrator(
            decision_agent, reply_agent, state, fact_store, chat, bot_username="cohost",
        )
        await orchestrator.run(event_queue, token)
        await orchestrator.close()
    """

    def __init__(
        self,
        decision_agent: DecisionAgent,
        reply_agent: ReplyAgent,
        state: ConversationState,
        fact_store: FactStore,
        chat_sink: ChatSink,
        bot_username: str,
        config: Optional[OrchestratorConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._decision = decision_agent
        self._reply = reply_agent
        self._state = state
        self._facts = fact_store
        self._sink = chat_sink
        self._bot_username = bot_username
        self._config = config or OrchestratorConfig.from_settings()
        self._clock = clock

        self._reply_tasks: Set[asyncio.Task] = set()

        # Stats
        self._processed = 0
        self._failed = 0
        self._replies_sent = 0
        self._replies_failed = 0
        self._cooldown_hits = 0

    async def run(self, queue: EventQueue, token: Optional[CancellationToken] = None) -> None:
        """Process events in dequeue order until the queue closes or token fires."""
        token = token or CancellationToken()
        while True:
            try:
                event = await token.guard(queue.get())
            except TokenCancelled:
                return
            if event is None:
                return

            start = time.time()
            outcome = await self.process(event)
            logger.info(
                f"Processed message from {event.username} ({outcome.name.lower()}) "
                f"in {(time.time() - start) * 1000:.0f}ms: {event.text}"
            )

    async def process(self, event: ChatEvent) -> ProcessOutcome:
        """Run the pipeline for one event; failures of this event are logged."""
        self._processed += 1
        try:
            return await self._process(event)
        except CoHostError as e:
            self._failed += 1
            logger.warning(f"Failed to process message from {event.username}: {e}")
            return ProcessOutcome.FAILED

    async def _process(self, event: ChatEvent) -> ProcessOutcome:
        snapshot = await self._state.snapshot(self._facts.format)

        result = await self._decision.call(event, snapshot)

        await self._state.set_summary(result.new_summary)

        if result.remove_facts:
            try:
                self._facts.remove_by_index(result.remove_facts)
            except ValidationError as e:
                logger.warning(f"Fact removal rejected: {e}")

        if result.add_facts:
            self._facts.add(result.add_facts)

        if not result.need_response:
            logger.debug("Response is not required")
            return ProcessOutcome.NO_RESPONSE

        elapsed = self._state.seconds_since_reply(self._clock())
        if elapsed is not None and elapsed < self._config.reply_cooldown_s:
            self._cooldown_hits += 1
            logger.info(
                f"Reply suppressed, last reply {elapsed:.0f}s ago "
                f"(cooldown {self._config.reply_cooldown_s:.0f}s)"
            )
            return ProcessOutcome.COOLDOWN

        if self._config.wait_for_reply:
            await self._generate_reply(event, snapshot)
        else:
            task = asyncio.create_task(self._generate_reply(event, snapshot))
            self._reply_tasks.add(task)
            task.add_done_callback(self._reply_tasks.discard)

        return ProcessOutcome.REPLY_DISPATCHED

    async def _generate_reply(self, event: ChatEvent, snapshot: ConversationSnapshot) -> bool:
        try:
            result = await self._reply.call(event, snapshot)

            if len(result.text) > self._config.max_message_length:
                raise ValidationError(
                    f"Response is too long ({len(result.text)} > {self._config.max_message_length})"
                )

            await self._sink.send_message(result.text)
            await self._state.record_reply(self._bot_username, result.text)
        except CoHostError as e:
            self._replies_failed += 1
            logger.error(
                f"Failed to generate reply: username={event.username}, "
                f"text={event.text!r}, error={e}"
            )
            return False
        except Exception as e:
            # Nobody awaits a detached reply task
            self._replies_failed += 1
            logger.exception(f"Unexpected error while replying to {event.username}: {e}")
            return False

        self._replies_sent += 1
        return True

    async def drain(self) -> None:
        """Wait for every reply in flight."""
        while self._reply_tasks:
            await asyncio.gather(*list(self._reply_tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel replies still in flight."""
        tasks = list(self._reply_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._reply_tasks.clear()

    @property
    def pending_replies(self) -> int:
        return len(self._reply_tasks)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        return {
            "processed": self._processed,
            "failed": self._failed,
            "replies_sent": self._replies_sent,
            "replies_failed": self._replies_failed,
            "cooldown_hits": self._cooldown_hits,
            "pending_replies": len(self._reply_tasks),
        }
