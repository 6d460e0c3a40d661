"""
Decision and Reply Agents

Stateless request formatters around one LLM call each:
- DecisionAgent: updates the summary and facts and decides whether to reply
- ReplyAgent: writes the chat message

Both render their prompt from a ConversationSnapshot taken by the caller,
so neither touches shared state. Each call has its own deadline.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from cohost.config import settings
from cohost.core.llm import LLMProvider, Message
from cohost.errors import ProviderError
from cohost.logger import get_logger
from .events import ChatEvent
from .memory import ConversationSnapshot, format_time
from .prompts import DECISION_PROMPT_TEMPLATE, REPLY_PROMPT_TEMPLATE, render_template

logger = get_logger(__name__)


@dataclass
class DecisionResult:
    """
    Parsed decision-tier output.

    Attributes:
        new_summary: Replacement for the conversation summary
        add_facts: Facts to remember
        remove_facts: 1-based numbers from the fact listing in the prompt
        need_response: Whether the reply tier should run
    """
    new_summary: str = ""
    add_facts: List[str] = field(default_factory=list)
    remove_facts: List[int] = field(default_factory=list)
    need_response: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionResult":
        """
        Build from the decoded JSON object. Missing keys take defaults,
        wrongly typed values are rejected.
        """
        new_summary = data.get("new_summary") or ""
        add_facts = data.get("add_facts") or []
        remove_facts = data.get("remove_facts") or []
        need_response = data.get("need_response", False)

        if not isinstance(new_summary, str):
            raise ProviderError("new_summary must be a string")
        if not isinstance(add_facts, list) or not all(isinstance(f, str) for f in add_facts):
            raise ProviderError("add_facts must be a list of strings")
        if not isinstance(remove_facts, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in remove_facts
        ):
            raise ProviderError("remove_facts must be a list of integers")
        if not isinstance(need_response, bool):
            raise ProviderError("need_response must be a boolean")

        return cls(
            new_summary=new_summary,
            add_facts=add_facts,
            remove_facts=remove_facts,
            need_response=need_response,
        )


@dataclass
class ReplyResult:
    """Reply-tier output."""
    text: str


def strip_code_fence(content: str) -> str:
    """Remove surrounding ``` fences and a leading json language tag."""
    text = content.strip().strip("`").strip()
    if text[:4].lower() == "json":
        text = text[4:].strip()
    return text


def parse_json_object(content: str) -> Dict[str, Any]:
    """
    Decode the JSON object in an LLM response.

    Raises:
        ProviderError: If the content is not a JSON object
    """
    text = strip_code_fence(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Failed to unmarshal response: {e}") from e

    if not isinstance(data, dict):
        raise ProviderError("Response is not a JSON object")
    return data


class _Agent:
    """Shared prompt values and the bounded LLM call."""

    def __init__(
        self,
        llm: LLMProvider,
        channel: str,
        username: str,
        template: str,
        timeout_s: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._llm = llm
        self._channel = channel
        self._username = username
        self._template = template
        self._timeout_s = timeout_s if timeout_s is not None else settings.conversation.llm_timeout_s
        self._clock = clock

    def _base_values(self, event: ChatEvent, snapshot: ConversationSnapshot) -> Dict[str, Any]:
        now = self._clock()
        return {
            "last_message": f"{format_time(now)} - {event.username}: {event.text}",
            "now": format_time(now),
            "channel": self._channel,
            "username": self._username,
            "chat_history": snapshot.history_text,
            "summary": snapshot.summary or "No summary yet",
            "facts": snapshot.facts_text,
        }

    async def _complete(self, prompt: str, json_mode: bool) -> str:
        try:
            response = await asyncio.wait_for(
                self._llm.chat([Message(role="user", content=prompt)], json_mode=json_mode),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(f"LLM call timed out after {self._timeout_s:.0f}s") from e
        return response.content


class DecisionAgent(_Agent):
    """Decides how memory changes and whether to reply."""

    def __init__(self, llm: LLMProvider, channel: str, username: str, **kwargs: Any):
        kwargs.setdefault("template", DECISION_PROMPT_TEMPLATE)
        super().__init__(llm, channel, username, **kwargs)

    def build_prompt(self, event: ChatEvent, snapshot: ConversationSnapshot) -> str:
        values = self._base_values(event, snapshot)
        if snapshot.last_reply_time is None:
            values["last_reply"] = "You have not written to the chat yet."
        else:
            elapsed = int(max(0.0, self._clock() - snapshot.last_reply_time))
            values["last_reply"] = f"You replied {elapsed} seconds ago."
        return render_template(self._template, values)

    async def call(self, event: ChatEvent, snapshot: ConversationSnapshot) -> DecisionResult:
        """
        Run the decision tier.

        Raises:
            ProviderError: On LLM failure, timeout, or malformed JSON
        """
        content = await self._complete(self.build_prompt(event, snapshot), json_mode=True)
        return DecisionResult.from_dict(parse_json_object(content))


class ReplyAgent(_Agent):
    """Writes the outgoing chat message."""

    def __init__(self, llm: LLMProvider, channel: str, username: str, **kwargs: Any):
        kwargs.setdefault("template", REPLY_PROMPT_TEMPLATE)
        super().__init__(llm, channel, username, **kwargs)

    def build_prompt(self, event: ChatEvent, snapshot: ConversationSnapshot) -> str:
        return render_template(self._template, self._base_values(event, snapshot))

    async def call(self, event: ChatEvent, snapshot: ConversationSnapshot) -> ReplyResult:
        """
        Run the reply tier.

        Raises:
            ProviderError: On LLM failure, timeout, or an empty reply
        """
        content = await self._complete(self.build_prompt(event, snapshot), json_mode=False)
        text = content.strip()
        if not text:
            raise ProviderError("Reply is empty")
        return ReplyResult(text=text)
