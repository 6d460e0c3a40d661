"""
Audio Source Module

Decodes a live stream URL into raw PCM with an ffmpeg subprocess.

Output is always 16-bit little-endian mono PCM at 16 kHz. ffmpeg's own
reconnect options are switched off so an upstream failure ends the process
instead of being retried silently; the supervisor treats any exit as the
end of the run.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from cohost.errors import AudioStreamClosed, SpawnError
from cohost.logger import get_logger

logger = get_logger(__name__)


def build_ffmpeg_args(stream_url: str) -> List[str]:
    """Arguments turning stream_url into raw 16 kHz mono PCM on stdout."""
    return [
        "-loglevel", "warning",
        "-reconnect", "0",
        "-reconnect_at_eof", "0",
        "-reconnect_streamed", "0",
        "-reconnect_delay_max", "0",
        "-i", stream_url,
        "-vn",
        "-acodec", "pcm_s16le",
        "-ac", "1",
        "-ar", "16000",
        "-f", "s16le",
        "-",
    ]


class AudioSource(ABC):
    """Readable PCM byte stream backed by a process."""

    @abstractmethod
    async def start(self) -> None:
        """Spawn the decoder. Raises SpawnError on failure."""

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """
        Read up to size bytes.

        Raises:
            AudioStreamClosed: At end of output or on read failure
        """

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""

    @abstractmethod
    async def stop(self) -> None:
        """Kill the process if it is still running."""


class FFmpegAudioSource(AudioSource):
    """
    ffmpeg subprocess producing PCM on stdout.

    stderr is read line by line and logged at DEBUG; it is never parsed.

    Usage:
        source = FFmpegAudioSource("https://example.com/live.m3u8")
        await source.start()
        chunk = await source.read(4096)
        await source.stop()
    """

    def __init__(self, stream_url: str, ffmpeg_path: str = "ffmpeg"):
        self._stream_url = stream_url
        self._ffmpeg_path = ffmpeg_path
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stderr_task: Optional[asyncio.Task] = None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    async def start(self) -> None:
        args = build_ffmpeg_args(self._stream_url)
        logger.info(f"Running ffmpeg: {self._ffmpeg_path} {' '.join(args)}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                self._ffmpeg_path,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(f"Failed to start ffmpeg: {e}") from e

        self._stderr_task = asyncio.create_task(self._log_stderr())

    async def read(self, size: int) -> bytes:
        if self._process is None or self._process.stdout is None:
            raise AudioStreamClosed("ffmpeg is not running")

        stdout = self._process.stdout
        try:
            chunk = await stdout.read(size)
        except (OSError, ValueError) as e:
            raise AudioStreamClosed(f"Failed to read audio: {e}") from e

        if not chunk and stdout.at_eof():
            raise AudioStreamClosed("ffmpeg output ended")
        return chunk

    async def wait(self) -> int:
        if self._process is None:
            raise SpawnError("ffmpeg was never started")
        return await self._process.wait()

    async def stop(self) -> None:
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self._process.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("ffmpeg did not exit after kill")

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass
            self._stderr_task = None

    async def _log_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        async for line in self._process.stderr:
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.debug(f"ffmpeg: {text}")
