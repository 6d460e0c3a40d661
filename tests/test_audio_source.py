"""
Tests for the ffmpeg audio source.
"""

import pytest

from cohost.errors import AudioStreamClosed, SpawnError
from cohost.realtime.audio_source import FFmpegAudioSource, build_ffmpeg_args


class TestFFmpegArgs:
    """Tests for the decoder command line."""

    def test_output_format(self):
        args = build_ffmpeg_args("https://example.com/live.m3u8")

        assert args[-1] == "-"
        assert args[args.index("-f") + 1] == "s16le"
        assert args[args.index("-acodec") + 1] == "pcm_s16le"
        assert args[args.index("-ac") + 1] == "1"
        assert args[args.index("-ar") + 1] == "16000"
        assert "-vn" in args

    def test_reconnect_disabled_before_input(self):
        """Input options only apply when they precede -i."""
        args = build_ffmpeg_args("https://example.com/live.m3u8")
        input_at = args.index("-i")

        assert args[input_at + 1] == "https://example.com/live.m3u8"
        for option in ("-reconnect", "-reconnect_at_eof", "-reconnect_streamed"):
            assert args.index(option) < input_at
            assert args[args.index(option) + 1] == "0"


class TestFFmpegAudioSource:
    """Tests for the subprocess wrapper."""

    @pytest.mark.asyncio
    async def test_missing_binary_raises_spawn_error(self):
        source = FFmpegAudioSource("https://example.com/live.m3u8", ffmpeg_path="/nonexistent/ffmpeg")

        with pytest.raises(SpawnError):
            await source.start()

    @pytest.mark.asyncio
    async def test_read_before_start(self):
        source = FFmpegAudioSource("https://example.com/live.m3u8")

        with pytest.raises(AudioStreamClosed):
            await source.read(4096)

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        source = FFmpegAudioSource("https://example.com/live.m3u8")
        await source.stop()
        assert source.returncode is None
