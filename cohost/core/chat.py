"""
Chat Boundary Module

The co-host only needs two things from a chat service: a stream of incoming
messages and a way to send text.

Architecture:
- ChatMessage: One incoming message with its IRCv3 tags
- ChatSource / ChatSink: Abstract boundary used by the engine and orchestrator
- TwitchChatClient: Twitch IRC over WebSocket (aiohttp), both source and sink
- parse_irc_line: Minimal IRC line parser for PRIVMSG/PING

Usage:
    client = TwitchChatClient()
    await client.run(lambda message: queue.enqueue(message.username, message.text))
    await client.send_message("hello chat")
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import aiohttp

from cohost.config import TwitchConfig, settings
from cohost.errors import ChatError
from cohost.logger import get_logger

logger = get_logger(__name__)

ChatListener = Callable[["ChatMessage"], None]

_TAG_ESCAPES = {"\\s": " ", "\\:": ";", "\\\\": "\\", "\\r": "\r", "\\n": "\n"}


@dataclass(frozen=True)
class ChatMessage:
    """Incoming chat message."""
    channel: str
    username: str
    message_id: str
    text: str
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class IRCLine:
    """One parsed IRC protocol line."""
    command: str
    params: List[str] = field(default_factory=list)
    prefix: str = ""
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def nick(self) -> str:
        return self.prefix.split("!", 1)[0]

    @property
    def trailing(self) -> str:
        return self.params[-1] if self.params else ""


class ChatSource(ABC):
    """Stream of incoming chat messages."""

    @abstractmethod
    async def run(self, listener: ChatListener) -> None:
        """
        Deliver messages to listener until the connection ends.

        Raises:
            ChatError: When the connection is lost
        """


class ChatSink(ABC):
    """Outgoing chat messages."""

    @abstractmethod
    async def send_message(self, text: str) -> None:
        """Send text to the channel."""


def _unescape_tag(value: str) -> str:
    result = []
    i = 0
    while i < len(value):
        pair = value[i:i + 2]
        if pair in _TAG_ESCAPES:
            result.append(_TAG_ESCAPES[pair])
            i += 2
        elif value[i] == "\\":
            # Dangling or unknown escape, drop the backslash
            i += 1
        else:
            result.append(value[i])
            i += 1
    return "".join(result)


def parse_irc_line(line: str) -> Optional[IRCLine]:
    """
    Parse a raw IRC line.

    Returns:
        Parsed line, or None for blank input
    """
    line = line.rstrip("\r\n")
    if not line:
        return None

    tags: Dict[str, str] = {}
    if line.startswith("@"):
        raw_tags, _, line = line[1:].partition(" ")
        for item in raw_tags.split(";"):
            key, _, value = item.partition("=")
            if key:
                tags[key] = _unescape_tag(value)

    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")

    trailing = None
    if " :" in line:
        line, trailing = line.split(" :", 1)
    elif line.startswith(":"):
        line, trailing = "", line[1:]

    parts = line.split()
    if not parts:
        return None

    params = parts[1:]
    if trailing is not None:
        params.append(trailing)

    return IRCLine(command=parts[0].upper(), params=params, prefix=prefix, tags=tags)


def to_chat_message(line: IRCLine) -> Optional[ChatMessage]:
    """Convert a PRIVMSG line into a ChatMessage."""
    if line.command != "PRIVMSG" or len(line.params) < 2:
        return None

    username = line.tags.get("display-name") or line.nick
    return ChatMessage(
        channel=line.params[0].lstrip("#").lower(),
        username=username.lower(),
        message_id=line.tags.get("id", ""),
        text=line.trailing.strip(),
        tags=dict(line.tags),
    )


class TwitchChatClient(ChatSource, ChatSink):
    """
    Twitch chat over the IRC WebSocket endpoint.

    Features:
    - Tag capability for message ids and display names
    - PING/PONG keepalive
    - Log-only mode when notifications are disabled
    - Ignores incoming chat when configured, still keeps the connection
    """

    def __init__(self, config: Optional[TwitchConfig] = None):
        self._config = config or settings.twitch
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def config(self) -> TwitchConfig:
        return self._config

    @property
    def channel(self) -> str:
        return self._config.channel.lower()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def run(self, listener: ChatListener) -> None:
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self._config.irc_url, heartbeat=60)
            await self._handshake()
            logger.info(f"Connected to Twitch chat #{self.channel}")

            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    for raw in msg.data.split("\r\n"):
                        await self._handle_line(raw, listener)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    raise ChatError(f"Chat connection error: {self._ws.exception()}")

            raise ChatError("Chat connection closed")
        except aiohttp.ClientError as e:
            raise ChatError(f"Chat connection failed: {e}") from e
        finally:
            await self.disconnect()

    async def _handshake(self) -> None:
        await self._send_raw("CAP REQ :twitch.tv/tags twitch.tv/commands")
        await self._send_raw(f"PASS oauth:{self._config.oauth_token}")
        await self._send_raw(f"NICK {self._config.username.lower()}")
        await self._send_raw(f"JOIN #{self.channel}")

    async def _handle_line(self, raw: str, listener: ChatListener) -> None:
        line = parse_irc_line(raw)
        if line is None:
            return

        if line.command == "PING":
            await self._send_raw(f"PONG :{line.trailing}")
        elif line.command == "RECONNECT":
            raise ChatError("Twitch requested a reconnect")
        elif line.command == "NOTICE" and "authentication failed" in line.trailing.lower():
            raise ChatError(f"Chat login failed: {line.trailing}")
        elif line.command == "PRIVMSG":
            message = to_chat_message(line)
            if message is None or not message.text:
                return
            if self._config.ignore_chat:
                return
            listener(message)

    async def send_message(self, text: str) -> None:
        if self._config.disable_notifications:
            logger.info(f"Replied to message (notifications disabled): {text}")
            return

        if not self.is_connected:
            raise ChatError("Chat is not connected")

        # IRC lines cannot carry newlines
        text = " ".join(text.split())
        await self._send_raw(f"PRIVMSG #{self.channel} :{text}")
        logger.info(f"Replied to message: {text}")

    async def _send_raw(self, line: str) -> None:
        if self._ws is None:
            raise ChatError("Chat is not connected")
        try:
            await self._ws.send_str(line)
        except (aiohttp.ClientError, ConnectionError) as e:
            raise ChatError(f"Chat send failed: {e}") from e

    async def disconnect(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
