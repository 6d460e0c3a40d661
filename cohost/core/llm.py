"""
LLM Provider Module

Async chat completions against any OpenAI-compatible endpoint
(OpenAI, OpenRouter, local proxies).

Architecture:
- LLMProvider: Abstract base class defining the interface
- OpenAICompatibleProvider: aiohttp implementation
- Message/ChatResponse dataclasses for type safety

Every call carries its own deadline, independent of whatever cancellation
the caller applies on top.

Usage:
    from cohost.core.llm import OpenAICompatibleProvider, Message

    llm = OpenAICompatibleProvider(settings.decision)
    response = await llm.chat([Message(role="user", content="Hello!")])
    print(response.content)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

import aiohttp

from cohost.config import ModelConfig, settings
from cohost.errors import ProviderError
from cohost.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Message:
    """
    Represents a chat message.

    Attributes:
        role: Message role (system, user, assistant)
        content: Message content text
    """
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to API-compatible dictionary."""
        return {"role": self.role, "content": self.content}


@dataclass
class ChatResponse:
    """
    Response from LLM chat completion.

    Attributes:
        content: Generated text content
        model: Model name used
        usage: Token usage statistics
        finish_reason: Why generation stopped
    """
    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: str = ""

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.usage.get("total_tokens", 0)


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Agents depend on this interface so tests can substitute a fake.
    """

    @abstractmethod
    async def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> ChatResponse:
        """
        Generate a chat completion.

        Args:
            messages: List of conversation messages
            temperature: Sampling temperature override
            max_tokens: Max response tokens override
            json_mode: Ask the model for a JSON object response

        Returns:
            ChatResponse with generated content

        Raises:
            ProviderError: On transport failure, timeout or empty response
        """

    async def close(self) -> None:
        """Release network resources."""


class OpenAICompatibleProvider(LLMProvider):
    """
    Chat completions over aiohttp.

    One ClientSession is created lazily and reused for all calls.

    Example:
        llm = OpenAICompatibleProvider(settings.reply, timeout_s=30)
        response = await llm.chat([Message(role="user", content="Hi")])
    """

    def __init__(
        self,
        config: ModelConfig,
        timeout_s: Optional[float] = None,
        connect_timeout_s: float = 10.0,
    ):
        self._config = config
        self._timeout_s = timeout_s if timeout_s is not None else settings.conversation.llm_timeout_s
        self._connect_timeout_s = connect_timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

        self._call_count = 0
        self._total_tokens = 0

        logger.info(
            f"Initialized LLM provider: model={config.model}, "
            f"temperature={config.temperature}, max_tokens={config.max_tokens}"
        )

    @property
    def _headers(self) -> Dict[str, str]:
        """Return HTTP headers for API requests."""
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self._timeout_s,
                connect=self._connect_timeout_s,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> ChatResponse:
        body: Dict[str, Any] = {
            "model": self._config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature if temperature is not None else self._config.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self._config.max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        start_time = time.time()
        try:
            data = await asyncio.wait_for(self._post(body), timeout=self._timeout_s)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"LLM call timed out after {self._timeout_s:.0f}s") from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"LLM call failed: {e}") from e
        except ValueError as e:
            # JSONDecodeError and ContentTypeError: the body is not JSON
            raise ProviderError(f"LLM returned an unreadable response: {e}") from e

        if not isinstance(data, dict):
            raise ProviderError(f"LLM response is not a JSON object: {type(data).__name__}")

        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices:
            raise ProviderError("No chat completion choices returned")

        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise ProviderError("Malformed chat completion choice")

        content = message.get("content") or ""
        if not isinstance(content, str):
            raise ProviderError("Chat completion content is not text")

        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}

        self._call_count += 1
        self._total_tokens += usage.get("total_tokens") or 0
        logger.debug(
            f"LLM call to {self._config.model} took "
            f"{(time.time() - start_time) * 1000:.0f}ms"
        )

        return ChatResponse(
            content=content,
            model=data.get("model", self._config.model),
            usage=usage,
            finish_reason=str(choice.get("finish_reason") or ""),
        )

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        session = self._get_session()
        async with session.post(self._config.chat_url, headers=self._headers, json=body) as response:
            if response.status == 429:
                raise ProviderError("LLM rate limit exceeded")
            response.raise_for_status()
            return await response.json(content_type=None)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @property
    def stats(self) -> Dict[str, Any]:
        """Get call statistics."""
        return {
            "model": self._config.model,
            "call_count": self._call_count,
            "total_tokens": self._total_tokens,
        }
