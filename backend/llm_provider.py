"""Creator Safety Vetting - LLM Provider
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Thin async wrapper over the reasoning backends used by the image
capability and both review tiers.

Supports:
- Anthropic (Claude Haiku for screening, Opus for adjudication, Sonnet for vision)
- OpenAI (GPT-4o-mini / GPT-4o)
A provider without an API key reports itself as not configured.
"""

import logging
from typing import Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from retry_policy import PermanentCapabilityError

logger = logging.getLogger(__name__)

# Default models per role and provider
SCREENING_MODELS = {"anthropic": "claude-haiku-4-5-20251001", "openai": "gpt-4o-mini"}
ADJUDICATION_MODELS = {"anthropic": "claude-opus-4-5-20251101", "openai": "gpt-4o"}
VISION_MODELS = {"anthropic": "claude-sonnet-4-20250514", "openai": "gpt-4o"}

DEFAULT_TEMPERATURE = 0.1  # Low temp for consistent judgments


class LLMProvider:
    """One configured model behind a provider-neutral complete() call."""

    def __init__(
        self,
        openai_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        provider: str = "auto",
        model: Optional[str] = None,
        default_models: Optional[dict[str, str]] = None,
        label: str = "llm",
    ):
        """
        Args:
            openai_api_key: OpenAI API key
            anthropic_api_key: Anthropic API key
            provider: "openai", "anthropic", or "auto" (prefers Anthropic)
            model: Override model name
            default_models: provider -> model used when no override is given
            label: Name used in log lines
        """
        self.label = label
        self._openai_client = None
        self._anthropic_client = None

        if provider == "auto":
            if anthropic_api_key:
                provider = "anthropic"
            elif openai_api_key:
                provider = "openai"
            else:
                provider = "none"
        self.provider = provider

        if provider == "anthropic" and anthropic_api_key:
            self._anthropic_client = AsyncAnthropic(api_key=anthropic_api_key)
        elif provider == "openai" and openai_api_key:
            self._openai_client = AsyncOpenAI(api_key=openai_api_key)

        models = default_models or ADJUDICATION_MODELS
        self.model = model or models.get(self.provider, "none")

        if self.is_configured:
            logger.info(f"🧠 {self.label} provider ready: provider={self.provider}, model={self.model}")
        else:
            logger.info(f"⚠️ {self.label} provider not configured (no API key for '{self.provider}')")

    @property
    def is_configured(self) -> bool:
        return self._anthropic_client is not None or self._openai_client is not None

    async def complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 1024,
        images: Optional[list[tuple[str, str]]] = None,
    ) -> str:
        """
        Send one prompt and return the response text.

        Args:
            images: optional (media_type, base64_data) pairs sent before the text
        """
        if self._anthropic_client is not None:
            return await self._complete_with_anthropic(system, user, max_tokens, images or [])
        if self._openai_client is not None:
            return await self._complete_with_openai(system, user, max_tokens, images or [])
        raise PermanentCapabilityError(f"{self.label} provider is not configured")

    async def _complete_with_anthropic(self, system, user, max_tokens, images) -> str:
        content = [
            {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
            for media_type, data in images
        ]
        content.append({"type": "text", "text": user})

        response = await self._anthropic_client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": content}],
            temperature=DEFAULT_TEMPERATURE,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        return text.strip()

    async def _complete_with_openai(self, system, user, max_tokens, images) -> str:
        if images:
            content = [
                {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{data}"}}
                for media_type, data in images
            ]
            content.append({"type": "text", "text": user})
        else:
            content = user

        response = await self._openai_client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
            temperature=DEFAULT_TEMPERATURE,
            max_tokens=max_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    async def close(self) -> None:
        if self._anthropic_client is not None:
            await self._anthropic_client.close()
        if self._openai_client is not None:
            await self._openai_client.close()
