"""
Streaming Speech Recognition Module

One RecognitionSession is one bidirectional exchange with the recognition
provider: a configuration message, then raw audio chunks out, recognition
events in.

Architecture:
- RecognitionSession: Abstract session interface used by the supervisor
- SpeechClient: Factory opening a new session per connection attempt
- AzureRecognitionSession: Azure Speech SDK continuous recognition fed
  through a push stream
- AzureSpeechClient: Builds Azure sessions from settings

The Azure SDK invokes callbacks on its own threads; they are handed to the
event loop with call_soon_threadsafe and consumed by recv().

Usage:
    client = AzureSpeechClient()
    session = await client.start()
    await session.send_config()
    await session.send(pcm_chunk)
    phrases = await session.recv()
    await session.close()
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Union

import azure.cognitiveservices.speech as speechsdk

from cohost.config import SpeechConfig, settings
from cohost.errors import RecognitionError, StreamEnded, StreamError
from cohost.logger import get_logger

logger = get_logger(__name__)

SAMPLE_RATE_HZ = 16000
BITS_PER_SAMPLE = 16
CHANNELS = 1


@dataclass(frozen=True)
class RecognitionOptions:
    """Fixed session configuration sent before any audio."""
    language: str = "ru-RU"
    eou_pause_ms: int = 500
    sample_rate_hz: int = SAMPLE_RATE_HZ
    bits_per_sample: int = BITS_PER_SAMPLE
    channels: int = CHANNELS

    @classmethod
    def from_settings(cls, config: SpeechConfig) -> "RecognitionOptions":
        return cls(language=config.language, eou_pause_ms=config.eou_pause_ms)


class RecognitionSession(ABC):
    """
    One streaming exchange with a recognition provider.

    send_config() must be called exactly once, before any send().
    recv() raises StreamEnded when the provider closes the exchange
    normally and RecognitionError on any other failure.
    """

    @abstractmethod
    async def send_config(self) -> None:
        """Send the session configuration."""

    @abstractmethod
    async def send(self, chunk: bytes) -> None:
        """Forward one audio chunk."""

    @abstractmethod
    async def recv(self) -> List[str]:
        """
        Wait for the next recognition event.

        Returns:
            Trimmed non-empty final texts, or an empty list for partial
            and empty events
        """

    @abstractmethod
    async def close(self) -> None:
        """Cancel the underlying exchange."""


class SpeechClient(ABC):
    """Opens recognition sessions."""

    @abstractmethod
    async def start(self) -> RecognitionSession:
        """Open a new session."""


# Items placed on the session queue by SDK callbacks
_Item = Union[List[str], StreamError]


class AzureRecognitionSession(RecognitionSession):
    """
    Azure Speech SDK continuous recognition over a push audio stream.

    Events:
    - recognizing: partial result, recv() returns []
    - recognized: final result, recv() returns [text]
    - canceled (EndOfStream) / session_stopped: StreamEnded
    - canceled (Error): RecognitionError
    """

    def __init__(
        self,
        speech_config: speechsdk.SpeechConfig,
        options: RecognitionOptions,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._speech_config = speech_config
        self._options = options
        self._loop = loop or asyncio.get_running_loop()

        self._push_stream: Optional[speechsdk.audio.PushAudioInputStream] = None
        self._recognizer: Optional[speechsdk.SpeechRecognizer] = None
        self._events: "asyncio.Queue[_Item]" = asyncio.Queue()

        self._configured = False
        self._closed = False
        self._terminal: Optional[StreamError] = None

    async def send_config(self) -> None:
        if self._configured:
            raise RecognitionError("Session config already sent")
        if self._closed:
            raise RecognitionError("Session is closed")

        self._speech_config.speech_recognition_language = self._options.language
        self._speech_config.set_property(
            speechsdk.PropertyId.Speech_SegmentationSilenceTimeoutMs,
            str(self._options.eou_pause_ms),
        )

        stream_format = speechsdk.audio.AudioStreamFormat(
            samples_per_second=self._options.sample_rate_hz,
            bits_per_sample=self._options.bits_per_sample,
            channels=self._options.channels,
        )
        self._push_stream = speechsdk.audio.PushAudioInputStream(stream_format=stream_format)
        audio_config = speechsdk.audio.AudioConfig(stream=self._push_stream)

        self._recognizer = speechsdk.SpeechRecognizer(
            speech_config=self._speech_config,
            audio_config=audio_config,
        )
        self._recognizer.recognizing.connect(self._on_recognizing)
        self._recognizer.recognized.connect(self._on_recognized)
        self._recognizer.canceled.connect(self._on_canceled)
        self._recognizer.session_stopped.connect(self._on_session_stopped)

        future = self._recognizer.start_continuous_recognition_async()
        try:
            await self._loop.run_in_executor(None, future.get)
        except RuntimeError as e:
            raise RecognitionError(f"Failed to start recognition: {e}") from e

        self._configured = True
        logger.debug(
            f"Recognition session started: language={self._options.language}, "
            f"eou_pause={self._options.eou_pause_ms}ms"
        )

    async def send(self, chunk: bytes) -> None:
        if not self._configured or self._push_stream is None:
            raise RecognitionError("Session config must be sent before audio")
        if self._terminal is not None:
            raise self._terminal
        self._push_stream.write(chunk)

    async def recv(self) -> List[str]:
        if self._terminal is not None:
            raise self._terminal

        item = await self._events.get()
        if isinstance(item, StreamError):
            self._terminal = item
            raise item
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._push_stream is not None:
            self._push_stream.close()

        if self._recognizer is not None:
            future = self._recognizer.stop_continuous_recognition_async()
            try:
                await self._loop.run_in_executor(None, future.get)
            except RuntimeError as e:
                logger.debug(f"Error stopping recognizer: {e}")
            self._recognizer = None

    # ========================================================================
    # SDK callbacks (called from SDK threads)
    # ========================================================================

    def _put(self, item: _Item) -> None:
        if self._closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._events.put_nowait, item)
        except RuntimeError:
            # Event loop already closed during shutdown
            logger.debug("Dropping recognition event, loop is closed")

    def _on_recognizing(self, evt: speechsdk.SpeechRecognitionEventArgs) -> None:
        self._put([])

    def _on_recognized(self, evt: speechsdk.SpeechRecognitionEventArgs) -> None:
        if evt.result.reason != speechsdk.ResultReason.RecognizedSpeech:
            self._put([])
            return
        self._put(final_alternatives([evt.result.text]))

    def _on_canceled(self, evt: speechsdk.SpeechRecognitionCanceledEventArgs) -> None:
        details = evt.cancellation_details
        if details.reason == speechsdk.CancellationReason.EndOfStream:
            self._put(StreamEnded("Recognition stream ended"))
        else:
            self._put(RecognitionError(
                f"Recognition canceled: {details.reason} {details.error_details or ''}".strip()
            ))

    def _on_session_stopped(self, evt: speechsdk.SessionEventArgs) -> None:
        self._put(StreamEnded(f"Recognition session {evt.session_id} stopped"))


class AzureSpeechClient(SpeechClient):
    """
    Opens Azure recognition sessions.

    A fresh SpeechConfig is built per session so reconnects never reuse
    state from a failed exchange.
    """

    def __init__(self, config: Optional[SpeechConfig] = None):
        self._config = config or settings.speech
        self._config.validate()
        self._options = RecognitionOptions.from_settings(self._config)

        logger.info(
            f"Speech client configured: region={self._config.region}, "
            f"language={self._config.language}"
        )

    async def start(self) -> RecognitionSession:
        speech_config = speechsdk.SpeechConfig(
            subscription=self._config.api_key,
            region=self._config.region,
        )
        return AzureRecognitionSession(speech_config, self._options)


def final_alternatives(texts: List[str]) -> List[str]:
    """Trim alternatives and drop empty ones."""
    result = []
    for text in texts:
        text = (text or "").strip()
        if text:
            result.append(text)
    return result
