"""
Test Package Initialization

This package contains all unit tests for the stream co-host.

Test Structure:
- test_config.py: Configuration tests
- test_facts.py: Fact store tests
- test_events.py: Event queue tests
- test_cancellation.py: Cancellation token tests
- test_transcription.py: Transcription supervisor tests
- test_speech.py: Azure recognition session tests
- test_audio_source.py: ffmpeg audio source tests
- test_memory.py: Conversation state tests
- test_agents.py: Decision/reply agent and prompt tests
- test_conversation.py: Conversation orchestrator tests
- test_chat.py: Twitch chat tests
- test_engine.py: Run loop tests
- test_llm.py: LLM provider tests against a local server
- test_cli.py: Command line tests
- test_logger.py: Logging setup tests

Run tests with:
    pytest tests/ -v
"""
