"""
Stream Co-Host - Source Package

An AI co-host that sits in a live stream's chat.

This package provides:
- Streaming transcription of the broadcast audio
- A bounded event queue shared by speech and chat
- A two-tier LLM pipeline deciding when and what to reply
- Durable fact memory in a JSON file
- CLI interface for running and managing the co-host
"""

__version__ = "1.0.0"

from cohost.config import settings

__all__ = ["settings", "__version__"]
