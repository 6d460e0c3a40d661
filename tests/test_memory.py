"""
Tests for conversation state and chat history.
"""

import pytest

from cohost.realtime.memory import ChatHistory, ChatRecord, ConversationState, format_time


class TestChatHistory:
    """Tests for the bounded history."""

    def test_empty_history(self):
        assert ChatHistory().format() == "No recent messages"

    def test_oldest_evicted(self):
        history = ChatHistory(max_size=2)
        history.add("a", "one")
        history.add("b", "two")
        history.add("c", "three")

        assert [r.text for r in history.records()] == ["two", "three"]
        assert len(history) == 2

    def test_line_format(self):
        record = ChatRecord("viewer", "hello", timestamp=0.5)
        assert record.format() == f"{format_time(0.5)} - viewer: hello"

    def test_format_time_never(self):
        assert format_time(None) == "never"


class TestConversationState:
    """Tests for shared state."""

    @pytest.mark.asyncio
    async def test_record_reply_sets_cooldown_clock(self):
        state = ConversationState(clock=lambda: 100.0)
        assert state.seconds_since_reply() is None

        await state.record_reply("cohost_bot", "hi chat")

        assert state.last_reply_time == 100.0
        assert state.seconds_since_reply(now=130.0) == 30.0
        assert [r.text for r in state.history.records()] == ["hi chat"]

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self):
        state = ConversationState(clock=lambda: 5.0)
        await state.set_summary("before")
        snap = await state.snapshot(lambda: "1 - fact\n")

        await state.set_summary("after")
        await state.record_reply("bot", "text")

        assert snap.summary == "before"
        assert snap.history == ()
        assert snap.history_text == "No recent messages"
        assert snap.facts_text == "1 - fact\n"
        assert snap.last_reply_time is None

    @pytest.mark.asyncio
    async def test_reset(self):
        state = ConversationState()
        await state.set_summary("s")
        await state.record_reply("bot", "t")
        await state.reset()

        assert state.summary == ""
        assert state.last_reply_time is None
        assert len(state.history) == 0
