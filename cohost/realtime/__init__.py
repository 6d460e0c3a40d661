"""
Real-Time Co-Host Module

Event-driven pipeline from stream audio and chat to replies.

Architecture:
- Audio Source: ffmpeg decoding the broadcast to raw PCM
- Transcription Supervisor: recognition sessions with reconnect
- Event Queue: bounded, drop-new queue of chat events
- Conversation Orchestrator: decision tier, then reply tier
- Memory: conversation state and the fact store
- Engine: restarting run loop wiring everything together

Usage:
    from cohost.realtime import CoHostEngine

    engine = CoHostEngine.from_settings()
    await engine.run()
"""

from .cancellation import CancellationToken, TokenCancelled
from .audio_source import AudioSource, FFmpegAudioSource, build_ffmpeg_args
from .transcription import (
    SessionOutcome,
    TranscriptionContext,
    TranscriptionState,
    TranscriptionSupervisor,
)
from .events import ChatEvent, EventQueue
from .memory import ChatHistory, ChatRecord, ConversationSnapshot, ConversationState
from .facts import FactStore
from .agents import DecisionAgent, DecisionResult, ReplyAgent, ReplyResult
from .conversation_controller import ConversationOrchestrator, OrchestratorConfig, ProcessOutcome
from .engine import CoHostEngine, EngineOptions

__all__ = [
    # Cancellation
    "CancellationToken",
    "TokenCancelled",
    # Audio / transcription
    "AudioSource",
    "FFmpegAudioSource",
    "build_ffmpeg_args",
    "SessionOutcome",
    "TranscriptionContext",
    "TranscriptionState",
    "TranscriptionSupervisor",
    # Events
    "ChatEvent",
    "EventQueue",
    # Memory
    "ChatHistory",
    "ChatRecord",
    "ConversationSnapshot",
    "ConversationState",
    "FactStore",
    # Agents
    "DecisionAgent",
    "DecisionResult",
    "ReplyAgent",
    "ReplyResult",
    # Orchestration
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "ProcessOutcome",
    "CoHostEngine",
    "EngineOptions",
]
