import base64
import logging
from dataclasses import dataclass

import google.generativeai as genai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from medcapture.config import Settings
from medcapture.errors import UnsupportedMediaTypeError

logger = logging.getLogger(__name__)


_DEFAULT_MODELS = {
    "gemini": "gemini-1.5-pro",
    "anthropic": "claude-3-5-sonnet-20240620",
    "openai": "gpt-4o",
}

# Media types each provider accepts as an inline attachment.
_PROVIDER_MEDIA = {
    "gemini": ("image/", "video/"),
    "anthropic": ("image/",),
    "openai": ("image/",),
}


@dataclass(frozen=True)
class Attachment:
    """Binary payload sent inline alongside the prompt."""

    data: bytes
    mime_type: str

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class LLMClient:
    """Thin wrapper over the configured generative completion provider.

    Returns the raw response text. Parsing and validation of that text is the
    caller's concern.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        provider = (settings.llm_provider or "auto").lower()
        if provider == "auto":
            if settings.gemini_api_key:
                provider = "gemini"
            elif settings.anthropic_api_key:
                provider = "anthropic"
            elif settings.openai_api_key:
                provider = "openai"
            else:
                provider = "none"
        self.provider = provider

        self._gemini = None
        self._anthropic = None
        self._openai = None
        if provider == "gemini" and settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)
            self._gemini = genai.GenerativeModel(
                self.model,
                generation_config={
                    "temperature": settings.llm_temperature,
                    "top_p": 0.8,
                    "top_k": 40,
                    "max_output_tokens": settings.llm_max_output_tokens,
                },
            )
        elif provider == "anthropic" and settings.anthropic_api_key:
            self._anthropic = AsyncAnthropic(api_key=settings.anthropic_api_key)
        elif provider == "openai" and settings.openai_api_key:
            self._openai = AsyncOpenAI(api_key=settings.openai_api_key)

    @property
    def model(self) -> str:
        if self.settings.llm_model:
            return self.settings.llm_model
        return _DEFAULT_MODELS.get(self.provider, "")

    def available(self) -> bool:
        if self.provider == "gemini":
            return self._gemini is not None
        if self.provider == "anthropic":
            return self._anthropic is not None
        if self.provider == "openai":
            return self._openai is not None
        return False

    def supports_media(self, mime_type: str) -> bool:
        prefixes = _PROVIDER_MEDIA.get(self.provider, ())
        return any(mime_type.startswith(prefix) for prefix in prefixes)

    async def complete(self, prompt: str, *, attachment: Attachment | None = None) -> str:
        """Send one completion request and return the concatenated response text."""
        if not self.available():
            raise RuntimeError("LLM provider unavailable")
        if attachment is not None and not self.supports_media(attachment.mime_type):
            raise UnsupportedMediaTypeError(
                f"Provider {self.provider} cannot process {attachment.mime_type} attachments"
            )

        logger.info(
            "Completion request via %s (model=%s, attachment=%s)",
            self.provider, self.model, attachment.mime_type if attachment else "none",
        )
        if self.provider == "gemini":
            parts: list = [prompt]
            if attachment is not None:
                parts.append({"mime_type": attachment.mime_type, "data": attachment.data})
            response = await self._gemini.generate_content_async(parts)
            return response.text

        if self.provider == "anthropic":
            content: list[dict] = [{"type": "text", "text": prompt}]
            if attachment is not None:
                content.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": attachment.mime_type,
                        "data": attachment.base64,
                    },
                })
            message = await self._anthropic.messages.create(
                model=self.model,
                max_tokens=self.settings.llm_max_output_tokens,
                temperature=self.settings.llm_temperature,
                messages=[{"role": "user", "content": content}],
            )
            raw = ""
            for block in message.content:
                if hasattr(block, "text"):
                    raw += block.text
            return raw

        user_content: list[dict] = [{"type": "text", "text": prompt}]
        if attachment is not None:
            user_content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{attachment.mime_type};base64,{attachment.base64}"},
            })
        response = await self._openai.chat.completions.create(
            model=self.model,
            max_tokens=self.settings.llm_max_output_tokens,
            temperature=self.settings.llm_temperature,
            messages=[{"role": "user", "content": user_content}],
        )
        return response.choices[0].message.content or ""
