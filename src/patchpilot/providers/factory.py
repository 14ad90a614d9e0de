"""Provider selection by configuration."""

import structlog
from openai import AsyncOpenAI

from patchpilot.config import PatchpilotConfig
from patchpilot.errors import UnsupportedProviderError

from .base import AIReviewProvider
from .openai_provider import OpenAIReviewProvider

logger = structlog.get_logger(__name__)

SUPPORTED_PROVIDERS = ("openai", "ollama")


def create_review_provider(
    config: PatchpilotConfig,
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
) -> AIReviewProvider:
    """Create the configured AI review provider.

    Args:
        config: Process configuration
        provider: Override of config.ai_provider
        api_key: Caller-supplied key (BYOK); takes precedence over the env key
        model: Override of config.ai_model

    Raises:
        UnsupportedProviderError: If no implementation exists for the name
    """
    name = (provider or config.ai_provider).lower()
    model = model or config.ai_model

    if name == "openai":
        client = AsyncOpenAI(
            api_key=api_key or config.openai_api_key,
            timeout=config.ai_timeout_s,
        )
    elif name == "ollama":
        client = AsyncOpenAI(
            # Ollama ignores the key but the client requires one
            api_key=api_key or "ollama",
            base_url=f"{config.ollama_url.rstrip('/')}/v1",
            timeout=config.ai_timeout_s,
        )
    else:
        raise UnsupportedProviderError(
            f"Unsupported AI provider {name!r}; expected one of {', '.join(SUPPORTED_PROVIDERS)}"
        )

    logger.info("AI review provider created", provider=name, model=model, byok=api_key is not None)
    return OpenAIReviewProvider(client=client, model=model, name=name)
