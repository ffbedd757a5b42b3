from crm_copilot.backends.base import (
    BriefingBackend,
    LiveConnection,
    LiveSessionConfig,
    ModelReply,
    StreamEvent,
    StreamingBackend,
    TextBackend,
)
from crm_copilot.config import COPILOT_PROVIDER
from crm_copilot.errors import ConfigurationError

PROVIDERS = ("gemini", "openai")


def _check_provider(provider: str | None) -> str:
    provider = (provider or COPILOT_PROVIDER).lower()
    if provider not in PROVIDERS:
        raise ConfigurationError(f"Unknown provider '{provider}' (expected one of {', '.join(PROVIDERS)})")
    return provider


def build_text_backend(provider: str | None = None, logger=None) -> TextBackend:
    provider = _check_provider(provider)
    if provider == "openai":
        from crm_copilot.backends.openai_chat import OpenAIChatBackend

        return OpenAIChatBackend(logger=logger)
    from crm_copilot.backends.gemini import GeminiTextBackend

    return GeminiTextBackend(logger=logger)


def build_streaming_backend(provider: str | None = None, logger=None) -> StreamingBackend:
    provider = _check_provider(provider)
    if provider == "openai":
        from crm_copilot.backends.openai_realtime import OpenAIRealtimeBackend

        return OpenAIRealtimeBackend(logger=logger)
    from crm_copilot.backends.gemini import GeminiLiveBackend

    return GeminiLiveBackend(logger=logger)


def build_briefing_backend(logger=None) -> BriefingBackend:
    """Summaries and speech are only offered through Gemini."""
    from crm_copilot.backends.gemini import GeminiBriefingBackend

    return GeminiBriefingBackend(logger=logger)


__all__ = [
    "BriefingBackend",
    "LiveConnection",
    "LiveSessionConfig",
    "ModelReply",
    "StreamEvent",
    "StreamingBackend",
    "TextBackend",
    "PROVIDERS",
    "build_briefing_backend",
    "build_streaming_backend",
    "build_text_backend",
]
