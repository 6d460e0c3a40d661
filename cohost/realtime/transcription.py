"""
Transcription Supervisor Module

Owns one transcription run for a stream URL:

    INIT -> CONNECTING -> STREAMING -> RECONNECTING -> STREAMING ... -> TERMINATED

- INIT spawns the audio decoder; a spawn failure terminates the run
- STREAMING runs a send loop and a receive loop against one recognition
  session, joined fail-fast
- A session that ends with StreamEnded is reopened on the same audio
  stream (the decoder keeps running); any other failure terminates the run
- The decoder exiting, cleanly or not, terminates the run

The run's outcome lives in its TranscriptionContext: phrases flow out
through its bounded queue and the cause of termination is its token's
first cause.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import AsyncIterator, Callable, Dict, Any, Optional

from cohost.config import settings
from cohost.core.speech import RecognitionSession, SpeechClient
from cohost.errors import (
    AudioSourceExited,
    RecognitionError,
    SpawnError,
    StreamEnded,
)
from cohost.logger import get_logger
from .audio_source import AudioSource, FFmpegAudioSource
from .cancellation import CancellationToken, TokenCancelled

logger = get_logger(__name__)

PHRASE_QUEUE_SIZE = 32
AUDIO_CHUNK_SIZE = 4096

AudioSourceFactory = Callable[[str], AudioSource]


class TranscriptionState(Enum):
    """State of the transcription run."""
    INIT = auto()
    CONNECTING = auto()
    STREAMING = auto()
    RECONNECTING = auto()
    TERMINATED = auto()


@dataclass(frozen=True)
class SessionOutcome:
    """How one recognition session ended: retryable or fatal with a cause."""
    retryable: bool
    cause: Optional[BaseException] = None

    @classmethod
    def retry(cls, cause: Optional[BaseException] = None) -> "SessionOutcome":
        return cls(retryable=True, cause=cause)

    @classmethod
    def fatal(cls, cause: Optional[BaseException]) -> "SessionOutcome":
        return cls(retryable=False, cause=cause)

    @classmethod
    def classify(cls, error: BaseException) -> "SessionOutcome":
        """StreamEnded is the only benign ending."""
        if isinstance(error, StreamEnded):
            return cls.retry(error)
        return cls.fatal(error)


class TranscriptionContext:
    """
    Lifetime of one transcription run.

    Holds the run's cancellation token and the bounded phrase queue. Once
    cancelled it stays terminal and its cause never changes.
    """

    def __init__(
        self,
        parent: Optional[CancellationToken] = None,
        phrase_capacity: int = PHRASE_QUEUE_SIZE,
    ):
        self.token = parent.child() if parent is not None else CancellationToken()
        self._phrases: "asyncio.Queue[str]" = asyncio.Queue(maxsize=phrase_capacity)

    def cancel(self, cause: Optional[BaseException] = None) -> bool:
        """Terminate the run; only the first cause is kept."""
        return self.token.cancel(cause)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    @property
    def cause(self) -> Optional[BaseException]:
        return self.token.cause

    async def wait(self) -> None:
        """Wait until the run terminates."""
        await self.token.wait()

    async def send_phrase(self, phrase: str) -> bool:
        """
        Queue a phrase, waiting for room unless the run terminates first.

        Returns:
            False if the run terminated before the phrase was queued
        """
        try:
            await self.token.guard(self._phrases.put(phrase))
        except TokenCancelled:
            return False
        return True

    async def phrases(self) -> AsyncIterator[str]:
        """Yield phrases in recognition order until the run terminates."""
        while True:
            try:
                phrase = await self.token.guard(self._phrases.get())
            except TokenCancelled:
                return
            yield phrase

    @property
    def pending_phrases(self) -> int:
        return self._phrases.qsize()


class TranscriptionSupervisor:
    """
    Runs and restarts recognition sessions for one stream.

    Usage:
        supervisor = TranscriptionSupervisor(AzureSpeechClient())
        context = supervisor.start(stream_url)
        async for phrase in context.phrases():
            ...
        print(context.cause)
    """

    def __init__(
        self,
        speech_client: SpeechClient,
        audio_factory: Optional[AudioSourceFactory] = None,
        chunk_size: int = AUDIO_CHUNK_SIZE,
    ):
        self._speech_client = speech_client
        self._audio_factory = audio_factory or (
            lambda url: FFmpegAudioSource(url, ffmpeg_path=settings.engine.ffmpeg_path)
        )
        self._chunk_size = chunk_size

        self._state = TranscriptionState.INIT
        self._task: Optional[asyncio.Task] = None
        self._reconnects = 0
        self._sessions_started = 0

    def start(
        self,
        stream_url: str,
        parent: Optional[CancellationToken] = None,
    ) -> TranscriptionContext:
        """Begin a run in the background and return its context."""
        context = TranscriptionContext(parent)
        self._reconnects = 0
        self._sessions_started = 0
        self._task = asyncio.create_task(self.run(context, stream_url))
        return context

    async def wait_closed(self) -> None:
        """Wait until the background run has released its resources."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def run(self, context: TranscriptionContext, stream_url: str) -> None:
        """Drive one run to TERMINATED. Never raises for run failures."""
        self._set_state(TranscriptionState.INIT)
        audio = self._audio_factory(stream_url)

        try:
            await audio.start()
        except SpawnError as e:
            context.cancel(e)
            self._set_state(TranscriptionState.TERMINATED)
            logger.error(f"Transcription failed: {e}")
            return

        tasks = [
            asyncio.create_task(self._run_with_retry(context, audio)),
            asyncio.create_task(self._watch_audio(context, audio)),
        ]

        try:
            await context.wait()
        finally:
            # Make sure a cancelled caller still leaves a terminated context
            context.cancel(None)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await audio.stop()
            self._set_state(TranscriptionState.TERMINATED)

            if context.cause is not None:
                logger.error(f"Transcription failed: {context.cause}")
            else:
                logger.info("Transcription stopped")

    async def _watch_audio(self, context: TranscriptionContext, audio: AudioSource) -> None:
        returncode = await audio.wait()
        context.cancel(AudioSourceExited(returncode))

    async def _run_with_retry(self, context: TranscriptionContext, audio: AudioSource) -> None:
        first = True
        while not context.cancelled:
            self._set_state(
                TranscriptionState.CONNECTING if first else TranscriptionState.RECONNECTING
            )
            first = False

            outcome = await self._run_session(context, audio)
            if context.cancelled:
                return

            if outcome.retryable:
                self._reconnects += 1
                logger.info("Recognition stream ended, reconnecting")
                continue

            context.cancel(outcome.cause)
            return

    async def _run_session(self, context: TranscriptionContext, audio: AudioSource) -> SessionOutcome:
        attempt = context.token.child()

        try:
            session = await self._speech_client.start()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return SessionOutcome.fatal(RecognitionError(f"Failed to start transcription: {e}"))

        self._sessions_started += 1
        self._set_state(TranscriptionState.STREAMING)

        receiver = asyncio.create_task(self._receive_phrases(context, session))
        sender = asyncio.create_task(self._stream_audio(audio, session))
        stopper = asyncio.create_task(attempt.wait())
        tasks = (receiver, sender, stopper)

        try:
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

            outcomes = []
            for task in (receiver, sender):
                if task not in done or task.cancelled():
                    continue
                error = task.exception()
                if error is None:
                    error = RecognitionError("Recognition loop exited unexpectedly")
                outcomes.append(SessionOutcome.classify(error))

            if outcomes:
                return outcomes[0]
            return SessionOutcome.fatal(attempt.cause)
        finally:
            attempt.cancel(None)
            try:
                await session.close()
            except Exception as e:
                logger.debug(f"Error closing recognition session: {e}")

    async def _stream_audio(self, audio: AudioSource, session: RecognitionSession) -> None:
        await session.send_config()

        while True:
            chunk = await audio.read(self._chunk_size)
            if not chunk:
                await asyncio.sleep(0)
                continue
            await session.send(chunk)

    async def _receive_phrases(self, context: TranscriptionContext, session: RecognitionSession) -> None:
        while True:
            phrases = await session.recv()
            for phrase in phrases:
                logger.debug(f"Phrase: {phrase}")
                if not await context.send_phrase(phrase):
                    return

    def _set_state(self, state: TranscriptionState) -> None:
        if state != self._state:
            logger.debug(f"Transcription state: {self._state.name} -> {state.name}")
        self._state = state

    @property
    def state(self) -> TranscriptionState:
        return self._state

    @property
    def reconnects(self) -> int:
        """Number of reconnects after a benign stream end in the current run."""
        return self._reconnects

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.name,
            "reconnects": self._reconnects,
            "sessions_started": self._sessions_started,
        }
