"""
Tests for the co-host run loop.

Transcription runs against fakes; the orchestrator is replaced by a
recorder so the tests only cover wiring and restart behavior.
"""

import asyncio

import pytest

from cohost.config import TwitchConfig
from cohost.errors import AudioSourceExited, ChatError
from cohost.realtime.cancellation import TokenCancelled
from cohost.realtime.engine import CoHostEngine, EngineOptions
from cohost.realtime.events import EventQueue
from cohost.realtime.transcription import TranscriptionSupervisor
from tests.conftest import FakeAudioSource, FakeLLM, FakeSpeechClient


class RecordingOrchestrator:
    """Stands in for ConversationOrchestrator and records every event."""

    def __init__(self):
        self.events = []
        self.closed = False
        self.stats = {}

    async def run(self, queue, token):
        while True:
            try:
                event = await token.guard(queue.get())
            except TokenCancelled:
                return
            if event is None:
                return
            self.events.append(event)

    async def close(self):
        self.closed = True


class FakeChat:
    """Chat client whose connection fails or delivers scripted messages."""

    def __init__(self, messages=(), error=None, **config):
        values = dict(channel="streamer", username="cohost_bot", oauth_token="token")
        values.update(config)
        self.config = TwitchConfig(**values)
        self.messages = list(messages)
        self.error = error
        self.disconnected = False

    async def run(self, listener):
        for message in self.messages:
            listener(message)
        if self.error is not None:
            raise self.error
        await asyncio.Event().wait()

    async def disconnect(self):
        self.disconnected = True


async def wait_until(predicate, timeout: float = 2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


def make_engine(audio_factory, speech, chat=None, backoff=0.01):
    orchestrator = RecordingOrchestrator()
    engine = CoHostEngine(
        supervisor=TranscriptionSupervisor(speech, audio_factory=audio_factory),
        orchestrator=orchestrator,
        event_queue=EventQueue(),
        chat=chat,
        options=EngineOptions(stream_url="https://example.com/live.m3u8", restart_backoff_s=backoff),
        channel="Streamer",
    )
    return engine, orchestrator


class TestRunOnce:
    """Tests for a single run."""

    @pytest.mark.asyncio
    async def test_phrases_become_channel_events(self):
        audio = FakeAudioSource()
        engine, orchestrator = make_engine(
            lambda url: audio,
            FakeSpeechClient([[["всем привет"]]]),
        )

        run = asyncio.create_task(engine.run_once())
        await wait_until(lambda: orchestrator.events)

        audio.exit(0)
        cause = await asyncio.wait_for(run, timeout=2.0)

        event = orchestrator.events[0]
        assert (event.username, event.text) == ("streamer", "всем привет")
        assert isinstance(cause, AudioSourceExited)
        assert engine.last_cause is cause

    @pytest.mark.asyncio
    async def test_chat_messages_enqueued(self):
        from cohost.core.chat import ChatMessage

        audio = FakeAudioSource()
        chat = FakeChat(messages=[ChatMessage("streamer", "viewer", "id-1", "hi bot")])
        engine, orchestrator = make_engine(lambda url: audio, FakeSpeechClient([[]]), chat=chat)

        run = asyncio.create_task(engine.run_once())
        await wait_until(lambda: orchestrator.events)

        audio.exit(0)
        await asyncio.wait_for(run, timeout=2.0)

        assert [(e.username, e.text) for e in orchestrator.events] == [("viewer", "hi bot")]

    @pytest.mark.asyncio
    async def test_chat_failure_ends_run(self):
        error = ChatError("Chat connection closed")
        engine, _ = make_engine(
            lambda url: FakeAudioSource(),
            FakeSpeechClient([[]]),
            chat=FakeChat(error=error),
        )

        cause = await asyncio.wait_for(engine.run_once(), timeout=2.0)

        assert cause is error

    @pytest.mark.asyncio
    async def test_unexpected_chat_crash_ends_run(self):
        error = ConnectionResetError("Cannot write to closing transport")
        audio = FakeAudioSource()
        engine, _ = make_engine(lambda url: audio, FakeSpeechClient([[]]), chat=FakeChat(error=error))

        cause = await asyncio.wait_for(engine.run_once(), timeout=2.0)

        assert cause is error
        assert audio.stopped

    @pytest.mark.asyncio
    async def test_chat_skipped_when_unused(self):
        audio = FakeAudioSource()
        chat = FakeChat(
            error=ChatError("should not connect"),
            ignore_chat=True,
            disable_notifications=True,
            oauth_token="",
        )
        engine, _ = make_engine(lambda url: audio, FakeSpeechClient([[]]), chat=chat)

        run = asyncio.create_task(engine.run_once())
        await asyncio.sleep(0.05)
        assert not run.done()

        audio.exit(0)
        cause = await asyncio.wait_for(run, timeout=2.0)
        assert isinstance(cause, AudioSourceExited)


class TestRunLoop:
    """Tests for restarting and stopping."""

    @pytest.mark.asyncio
    async def test_restarts_after_termination(self):
        spawned = []

        def factory(url):
            audio = FakeAudioSource(exit_code=1)
            spawned.append(audio)
            return audio

        llm = FakeLLM()
        engine, orchestrator = make_engine(factory, FakeSpeechClient([]))
        engine._providers = [llm]

        loop_task = asyncio.create_task(engine.run())
        await wait_until(lambda: len(spawned) >= 3)

        await engine.stop()
        await asyncio.wait_for(loop_task, timeout=2.0)

        assert engine.stats["runs"] >= 3
        assert orchestrator.closed
        assert llm.closed
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_stop_ends_current_run(self):
        audio = FakeAudioSource()
        engine, _ = make_engine(lambda url: audio, FakeSpeechClient([[]]), backoff=60.0)

        loop_task = asyncio.create_task(engine.run())
        await wait_until(lambda: audio.started)

        await engine.stop()
        await asyncio.wait_for(loop_task, timeout=2.0)

        assert audio.stopped
        assert engine.last_cause is None
