"""
Error Taxonomy

All failures the co-host distinguishes between. Each pipeline stage raises
the narrowest class; the loop that owns the stage decides whether it is
retried, logged and skipped, or fatal for the run.

- SpawnError: decoder could not be started (fatal for the run)
- StreamError: recognition session ended
    - StreamEnded: provider closed the exchange normally (reconnect)
    - RecognitionError: transport/provider failure (fatal for the run)
- AudioStreamClosed / AudioSourceExited: decoder output is gone (fatal)
- ProviderError: LLM failure or malformed output (fails one event)
- ValidationError: rejected operation, nothing changed
- PersistenceError: fact file could not be read or written
- ChatError: chat connection lost or unavailable (fatal for the run)
- ConfigError: invalid or missing settings
"""


class CoHostError(Exception):
    """Base class for all co-host errors."""


class ConfigError(CoHostError, ValueError):
    """Missing or invalid configuration value."""


class SpawnError(CoHostError):
    """The audio decoder process failed to start."""


class AudioStreamClosed(CoHostError):
    """The decoder's output stream reached end-of-file or failed to read."""


class AudioSourceExited(CoHostError):
    """The audio decoder process exited."""

    def __init__(self, returncode: int):
        super().__init__(f"ffmpeg process finished with code {returncode}")
        self.returncode = returncode


class StreamError(CoHostError):
    """A recognition session stopped."""


class StreamEnded(StreamError):
    """The recognition provider closed the exchange normally."""


class RecognitionError(StreamError):
    """The recognition provider or transport failed."""


class ProviderError(CoHostError):
    """An LLM call failed, timed out, or returned unusable output."""


class ValidationError(CoHostError, ValueError):
    """An operation was rejected before changing anything."""


class PersistenceError(CoHostError):
    """Durable storage could not be read or written."""


class ChatError(CoHostError):
    """The chat connection failed or is not available."""
