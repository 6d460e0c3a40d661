"""
Core external service clients: speech recognition, LLM and chat.
"""

from .llm import ChatResponse, LLMProvider, Message, OpenAICompatibleProvider
from .speech import (
    AzureRecognitionSession,
    AzureSpeechClient,
    RecognitionOptions,
    RecognitionSession,
    SpeechClient,
)
from .chat import ChatMessage, ChatSink, ChatSource, TwitchChatClient, parse_irc_line

__all__ = [
    # LLM
    "ChatResponse",
    "LLMProvider",
    "Message",
    "OpenAICompatibleProvider",
    # Speech
    "AzureRecognitionSession",
    "AzureSpeechClient",
    "RecognitionOptions",
    "RecognitionSession",
    "SpeechClient",
    # Chat
    "ChatMessage",
    "ChatSink",
    "ChatSource",
    "TwitchChatClient",
    "parse_irc_line",
]
