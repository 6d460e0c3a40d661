"""
Conversation Memory Module

Shared conversation state for the decision and reply tiers:
- Chat history: ring of the most recent chat records
- Summary: rolling summary written by the decision tier
- Last reply time: drives the reply cooldown

All access goes through one asyncio.Lock. Readers take a frozen snapshot
and release the lock before any network call; writers hold it only for
the assignment itself.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Tuple

from cohost.logger import get_logger

logger = get_logger(__name__)

HISTORY_SIZE = 20


def format_time(timestamp: Optional[float]) -> str:
    """Render a wall-clock timestamp as HH:MM:SS, or 'never'."""
    if not timestamp:
        return "never"
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")


@dataclass(frozen=True)
class ChatRecord:
    """Single chat line kept in history."""
    username: str
    text: str
    timestamp: float = field(default_factory=time.time)

    def format(self) -> str:
        return f"{format_time(self.timestamp)} - {self.username}: {self.text}"


class ChatHistory:
    """Bounded history in insertion order; the oldest record falls out first."""

    def __init__(self, max_size: int = HISTORY_SIZE):
        self._records: "deque[ChatRecord]" = deque(maxlen=max_size)

    def add(self, username: str, text: str, timestamp: Optional[float] = None) -> None:
        record = ChatRecord(
            username=username,
            text=text,
            timestamp=timestamp if timestamp is not None else time.time(),
        )
        self._records.append(record)

    def records(self) -> Tuple[ChatRecord, ...]:
        return tuple(self._records)

    def format(self) -> str:
        if not self._records:
            return "No recent messages"
        return "".join(f"{record.format()}\n" for record in self._records)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


@dataclass(frozen=True)
class ConversationSnapshot:
    """Immutable copy of the state handed to both LLM tiers."""
    summary: str
    history: Tuple[ChatRecord, ...]
    history_text: str
    last_reply_time: Optional[float]
    facts_text: str
    taken_at: float


class ConversationState:
    """
    Process-wide conversation state.

    Usage:
        state = ConversationState()
        snapshot = await state.snapshot(fact_store.format)
        await state.set_summary("Streamer is playing CS")
    """

    def __init__(
        self,
        history_size: int = HISTORY_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        self._lock = asyncio.Lock()
        self._clock = clock
        self._summary = ""
        self._history = ChatHistory(max_size=history_size)
        self._last_reply_time: Optional[float] = None

    async def snapshot(self, facts_formatter: Optional[Callable[[], str]] = None) -> ConversationSnapshot:
        """Copy the current state, including the rendered fact list."""
        async with self._lock:
            facts_text = facts_formatter() if facts_formatter else ""
            return ConversationSnapshot(
                summary=self._summary,
                history=self._history.records(),
                history_text=self._history.format(),
                last_reply_time=self._last_reply_time,
                facts_text=facts_text,
                taken_at=self._clock(),
            )

    async def set_summary(self, summary: str) -> None:
        """Replace the summary; the last writer wins."""
        async with self._lock:
            self._summary = summary

    async def record_reply(self, username: str, text: str) -> None:
        """Append a sent reply to history and start the cooldown."""
        async with self._lock:
            now = self._clock()
            self._history.add(username, text, timestamp=now)
            self._last_reply_time = now

    async def reset(self) -> None:
        async with self._lock:
            self._summary = ""
            self._history.clear()
            self._last_reply_time = None

    def seconds_since_reply(self, now: Optional[float] = None) -> Optional[float]:
        """Elapsed seconds since the last reply, or None if never replied."""
        if self._last_reply_time is None:
            return None
        now = now if now is not None else self._clock()
        return now - self._last_reply_time

    @property
    def summary(self) -> str:
        return self._summary

    @property
    def last_reply_time(self) -> Optional[float]:
        return self._last_reply_time

    @property
    def history(self) -> ChatHistory:
        return self._history
