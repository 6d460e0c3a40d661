"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import os
import sys
import pytest
from pathlib import Path
from typing import List, Optional, Union

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["AZURE_SPEECH_API_KEY"] = "test-key"
os.environ["AZURE_SPEECH_REGION"] = "westeurope"
os.environ["DECISION_API_KEY"] = "test-key"
os.environ["REPLY_API_KEY"] = "test-key"
os.environ["TWITCH_CHANNEL"] = "streamer"
os.environ["TWITCH_USERNAME"] = "cohost_bot"
os.environ["TWITCH_OAUTH_TOKEN"] = "test-token"
os.environ["FACTS_FILE"] = "/tmp/test_cohost_facts.json"

from cohost.core.chat import ChatSink
from cohost.core.llm import ChatResponse, LLMProvider
from cohost.core.speech import RecognitionSession, SpeechClient
from cohost.errors import SpawnError, StreamEnded
from cohost.realtime.audio_source import AudioSource


ScriptItem = Union[List[str], BaseException]


class FakeLLM(LLMProvider):
    """LLM returning scripted contents (or raising scripted errors) in order."""

    def __init__(self, responses: Optional[List[Union[str, BaseException]]] = None):
        self.responses = list(responses or [])
        self.prompts: List[str] = []
        self.json_modes: List[bool] = []
        self.closed = False

    async def chat(self, messages, temperature=None, max_tokens=None, json_mode=False):
        self.prompts.append(messages[-1].content)
        self.json_modes.append(json_mode)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return ChatResponse(content=item, model="fake-model")

    async def close(self):
        self.closed = True


class FakeSink(ChatSink):
    """Chat sink remembering what was sent."""

    def __init__(self):
        self.sent: List[str] = []

    async def send_message(self, text: str) -> None:
        self.sent.append(text)


class FakeSession(RecognitionSession):
    """
    Recognition session replaying a script of recv() results.

    Each item is either a list of phrases or an exception to raise. Once the
    script is exhausted recv() blocks until the session is closed.
    """

    def __init__(self, script: List[ScriptItem]):
        self.script = list(script)
        self.configured = False
        self.chunks = 0
        self.closed = False
        self._closed_event = asyncio.Event()

    async def send_config(self) -> None:
        self.configured = True

    async def send(self, chunk: bytes) -> None:
        self.chunks += 1

    async def recv(self) -> List[str]:
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        await self._closed_event.wait()
        raise StreamEnded("session closed")

    async def close(self) -> None:
        self.closed = True
        self._closed_event.set()


class FakeSpeechClient(SpeechClient):
    """Hands out one FakeSession per script; an exception script fails start()."""

    def __init__(self, scripts: List[Union[List[ScriptItem], BaseException]]):
        self.scripts = list(scripts)
        self.sessions: List[FakeSession] = []

    async def start(self) -> RecognitionSession:
        script = self.scripts.pop(0) if self.scripts else []
        if isinstance(script, BaseException):
            raise script
        session = FakeSession(script)
        self.sessions.append(session)
        return session


class FakeAudioSource(AudioSource):
    """Endless silence until exit() is called."""

    def __init__(self, spawn_error: bool = False, exit_code: Optional[int] = None):
        self.spawn_error = spawn_error
        self.started = False
        self.stopped = False
        self._exited = asyncio.Event()
        self._returncode = 0
        if exit_code is not None:
            self.exit(exit_code)

    def exit(self, returncode: int = 0) -> None:
        self._returncode = returncode
        self._exited.set()

    async def start(self) -> None:
        if self.spawn_error:
            raise SpawnError("Failed to start ffmpeg: not found")
        self.started = True

    async def read(self, size: int) -> bytes:
        await asyncio.sleep(0.001)
        return b"\x00" * size

    async def wait(self) -> int:
        await self._exited.wait()
        return self._returncode

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def facts_file(tmp_path):
    """Path of a fact file that does not exist yet."""
    return tmp_path / "data" / "facts.json"


@pytest.fixture
def fact_store(facts_file):
    """Empty fact store backed by a temporary file."""
    from cohost.realtime.facts import FactStore

    return FactStore(facts_file)


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def fake_audio():
    return FakeAudioSource()


@pytest.fixture
def sample_decision_json():
    """Typical decision tier output."""
    return (
        '{"new_summary": "Streamer is playing CS", '
        '"add_facts": ["plays CS on Fridays"], '
        '"remove_facts": [], '
        '"need_response": true}'
    )
