"""
Co-Host Engine Module

Top-level run loop. One run wires together:
- Transcription of the stream audio (phrases enter the queue as messages
  from the channel owner)
- Chat listening (messages enter the queue as-is)
- The conversation orchestrator consuming the queue

When the run terminates (decoder exit, recognition failure, chat failure)
the cause is logged and a new run starts after a fixed backoff. SIGINT and
SIGTERM stop the loop.
"""

import asyncio
import signal
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cohost.config import settings
from cohost.core.chat import ChatMessage, TwitchChatClient
from cohost.core.llm import LLMProvider, OpenAICompatibleProvider
from cohost.core.speech import AzureSpeechClient
from cohost.errors import ChatError, ConfigError
from cohost.logger import get_logger
from .agents import DecisionAgent, ReplyAgent
from .cancellation import CancellationToken, TokenCancelled
from .conversation_controller import ConversationOrchestrator
from .events import EventQueue
from .facts import FactStore
from .memory import ConversationState
from .transcription import TranscriptionContext, TranscriptionSupervisor

logger = get_logger(__name__)


@dataclass
class EngineOptions:
    """Run loop configuration."""
    stream_url: str = ""
    restart_backoff_s: float = 5.0

    # Keep a chat connection even if neither listening nor sending needs it
    force_chat: bool = False

    @classmethod
    def from_settings(cls, stream_url: Optional[str] = None) -> "EngineOptions":
        return cls(
            stream_url=stream_url or settings.engine.stream_url,
            restart_backoff_s=settings.engine.restart_backoff_s,
        )


class CoHostEngine:
    """
    Restarting supervisor for transcription, chat and conversation.

    Usage:
        engine = CoHostEngine.from_settings(stream_url="https://...m3u8")
        await engine.run()

    Or with injected components (tests):
        engine = CoHostEngine(supervisor, orchestrator, queue, chat, options)
        cause = await engine.run_once()
    """

    def __init__(
        self,
        supervisor: TranscriptionSupervisor,
        orchestrator: ConversationOrchestrator,
        event_queue: EventQueue,
        chat: Optional[TwitchChatClient] = None,
        options: Optional[EngineOptions] = None,
        channel: Optional[str] = None,
        providers: Optional[List[LLMProvider]] = None,
    ):
        self._supervisor = supervisor
        self._orchestrator = orchestrator
        self._queue = event_queue
        self._chat = chat
        self._options = options or EngineOptions.from_settings()
        self._channel = (channel or settings.twitch.channel).lower()
        self._providers = providers or []

        self._token = CancellationToken()
        self._running = False
        self._runs = 0
        self._last_cause: Optional[BaseException] = None

    @classmethod
    def from_settings(cls, stream_url: Optional[str] = None) -> "CoHostEngine":
        """Build the production wiring from the global settings."""
        options = EngineOptions.from_settings(stream_url)
        if not options.stream_url:
            raise ConfigError("STREAM_URL is required")

        twitch = settings.twitch
        decision_llm = OpenAICompatibleProvider(settings.decision)
        reply_llm = OpenAICompatibleProvider(settings.reply)
        chat = TwitchChatClient(twitch)

        orchestrator = ConversationOrchestrator(
            decision_agent=DecisionAgent(decision_llm, twitch.channel, twitch.username),
            reply_agent=ReplyAgent(reply_llm, twitch.channel, twitch.username),
            state=ConversationState(history_size=settings.conversation.history_size),
            fact_store=FactStore(settings.storage.facts_path),
            chat_sink=chat,
            bot_username=twitch.username.lower(),
        )

        return cls(
            supervisor=TranscriptionSupervisor(AzureSpeechClient(settings.speech)),
            orchestrator=orchestrator,
            event_queue=EventQueue(),
            chat=chat,
            options=options,
            channel=twitch.channel,
            providers=[decision_llm, reply_llm],
        )

    async def run(self) -> None:
        """Run until stopped, restarting after every terminated run."""
        self._running = True

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        logger.info(f"Co-host running for #{self._channel}")
        try:
            while self._running and not self._token.cancelled:
                cause = await self.run_once()
                if not self._running or self._token.cancelled:
                    break

                logger.error(
                    f"Run terminated: {cause}, restarting in {self._options.restart_backoff_s:.0f}s"
                )
                try:
                    await self._token.guard(asyncio.sleep(self._options.restart_backoff_s))
                except TokenCancelled:
                    break
        finally:
            await self.close()

    async def run_once(self) -> Optional[BaseException]:
        """
        Drive a single run until it terminates.

        Returns:
            The cause of termination (None if stopped)
        """
        self._runs += 1
        context = self._supervisor.start(self._options.stream_url, parent=self._token)

        tasks = [
            asyncio.create_task(self._pump_phrases(context)),
            asyncio.create_task(self._consume(context)),
        ]
        if self._chat is not None and self._needs_chat_connection():
            tasks.append(asyncio.create_task(self._listen_chat(context)))

        try:
            await context.wait()
        finally:
            context.cancel(None)
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            await self._supervisor.wait_closed()

        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Run task failed: {result}")

        self._last_cause = context.cause
        return context.cause

    def _needs_chat_connection(self) -> bool:
        twitch = self._chat.config
        return self._options.force_chat or not (twitch.ignore_chat and twitch.disable_notifications)

    async def _pump_phrases(self, context: TranscriptionContext) -> None:
        async for phrase in context.phrases():
            self._queue.enqueue(self._channel, phrase)

    async def _consume(self, context: TranscriptionContext) -> None:
        try:
            await self._orchestrator.run(self._queue, context.token)
        except Exception as e:
            context.cancel(e)
            raise

    async def _listen_chat(self, context: TranscriptionContext) -> None:
        def on_message(message: ChatMessage) -> None:
            self._queue.enqueue(message.username, message.text)

        try:
            await self._chat.run(on_message)
        except ChatError as e:
            context.cancel(e)
        except Exception as e:
            logger.exception(f"Chat listener crashed: {e}")
            context.cancel(e)

    async def stop(self) -> None:
        """Stop the loop and the current run."""
        if not self._running:
            return
        logger.debug("Stopping co-host...")
        self._running = False
        self._token.cancel(None)

    async def close(self) -> None:
        """Release replies in flight, the chat connection and LLM sessions."""
        self._running = False
        self._token.cancel(None)
        await self._orchestrator.close()
        if self._chat is not None:
            await self._chat.disconnect()
        for provider in self._providers:
            try:
                await provider.close()
            except Exception as e:
                logger.debug(f"Error closing LLM provider: {e}")
        logger.info("Co-host stopped")

    def _signal_handler(self) -> None:
        """Handle shutdown signals."""
        logger.info("Shutdown signal received")
        self._running = False
        self._token.cancel(None)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_cause(self) -> Optional[BaseException]:
        """Cause of the most recent terminated run."""
        return self._last_cause

    @property
    def stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "runs": self._runs,
            "queued": self._queue.size,
            "dropped": self._queue.dropped,
            "transcription": self._supervisor.stats,
            "conversation": self._orchestrator.stats,
        }
