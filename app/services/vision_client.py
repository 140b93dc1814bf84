"""
Vision inference client (async, httpx) with one-shot primary -> fallback.

Providers:
- GeminiProvider: Google Generative Language REST ``generateContent`` with the
  image inlined as base64.
- GroqProvider: Groq's OpenAI-compatible chat completions with the image as a
  ``data:`` URL.

VisionClient tries the primary once. On any failure it tries the fallback
once, if one is configured. There are no retries beyond that hop; the HTTP
request carrying the upload has its own timeout. Credentials and model names
come from VisionConfig, never from the process environment at call time.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from app.core.config import Settings, get_settings
from app.core.errors import BothProvidersFailed, NoFallbackConfigured, ProviderError
from app.core.logger import get_logger
from app.schemas.media import InferenceResult

log = get_logger(__name__)


PRIMARY_PROMPT = """You are a product-recognition assistant.
Look at this collage of video/image frames and list EVERY DISTINCT product, brand, or item you can identify.

Rules:
- List one product per line
- Include brand names when visible
- Be specific (e.g., "iPhone 15" not just "phone")
- Only list products you can clearly see
- No explanations or extra text

Products:"""

FALLBACK_PROMPT = """You are a product-recognition assistant.
List EVERY DISTINCT product/brand/item you see in the attached collage.
- One per line
- Be specific (e.g., "Coca-Cola Zero 330ml")
- No extra text"""


@dataclass
class VisionConfig:
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    groq_api_key: str = ""
    groq_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    timeout: float = 60.0
    temperature: float = 0.2
    max_tokens: int = 1024

    @classmethod
    def from_settings(cls, settings: Settings) -> "VisionConfig":
        return cls(
            gemini_api_key=settings.GEMINI_API_KEY,
            gemini_model=settings.GEMINI_MODEL,
            gemini_base_url=settings.GEMINI_BASE_URL,
            groq_api_key=settings.GROQ_API_KEY,
            groq_model=settings.GROQ_MODEL,
            groq_base_url=settings.GROQ_BASE_URL,
            timeout=settings.INFERENCE_TIMEOUT_SEC,
        )


class VisionProvider:
    """Base for HTTP vision providers sharing one lazily created AsyncClient."""

    name = "provider"

    def __init__(self, timeout: float = 60.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self._timeout = timeout
        self._aclient = client

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._aclient is None:
            self._aclient = httpx.AsyncClient(timeout=self._timeout)
        return self._aclient

    async def describe(self, prompt: str, image: bytes, mime_type: str) -> str:
        raise NotImplementedError

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            resp = await self._get_async_client().post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            raise ProviderError(self.name, f"HTTP {e.response.status_code}: {body}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e!r}") from e
        except ValueError as e:
            raise ProviderError(self.name, "response was not JSON") from e
        if not isinstance(data, dict):
            raise ProviderError(self.name, "unexpected response shape")
        return data

    async def aclose(self) -> None:
        if self._aclient is not None:
            await self._aclient.aclose()
            self._aclient = None


class GeminiProvider(VisionProvider):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    async def describe(self, prompt: str, image: bytes, mime_type: str) -> str:
        if not self.api_key:
            raise ProviderError(self.name, "GEMINI_API_KEY is not configured")
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(image).decode()}},
                    ],
                }
            ]
        }
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        data = await self._post_json(url, payload, headers)

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise ProviderError(self.name, f"no candidates returned (blockReason={reason})")
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        return text.strip()


class GroqProvider(VisionProvider):
    name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = "meta-llama/llama-4-scout-17b-16e-instruct",
        base_url: str = "https://api.groq.com/openai/v1",
        temperature: float = 0.2,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def describe(self, prompt: str, image: bytes, mime_type: str) -> str:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image).decode()}"
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                }
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        data = await self._post_json(f"{self.base_url}/chat/completions", payload, headers)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, "malformed chat completion") from e
        return (content or "").strip()


class VisionClient:
    """Primary -> fallback product listing. Build from settings with ``from_config``."""

    def __init__(
        self,
        primary: VisionProvider,
        fallback: Optional[VisionProvider] = None,
        primary_prompt: str = PRIMARY_PROMPT,
        fallback_prompt: str = FALLBACK_PROMPT,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.primary_prompt = primary_prompt
        self.fallback_prompt = fallback_prompt

    async def analyze(self, image: bytes, mime_type: str = "image/jpeg") -> InferenceResult:
        """Run the product-listing instruction against primary, then fallback.

        Raises:
            NoFallbackConfigured: primary failed and there is no fallback.
            BothProvidersFailed: primary and fallback both failed.
        """
        try:
            text = await self.primary.describe(self.primary_prompt, image, mime_type)
            log.info("%s analysis complete", self.primary.name)
            return InferenceResult(text=text, provider=self.primary.name, role="primary")
        except Exception as primary_err:
            if self.fallback is None:
                log.error("%s failed and no fallback configured: %s", self.primary.name, primary_err)
                raise NoFallbackConfigured(primary_err) from primary_err
            log.warning("%s failed, falling back to %s: %s", self.primary.name, self.fallback.name, primary_err)
            first_error = primary_err

        try:
            text = await self.fallback.describe(self.fallback_prompt, image, mime_type)
        except Exception as fallback_err:
            log.error("Both vision providers failed: %s / %s", first_error, fallback_err)
            raise BothProvidersFailed(first_error, fallback_err) from fallback_err
        log.info("%s analysis complete (fallback)", self.fallback.name)
        return InferenceResult(text=text, provider=self.fallback.name, role="fallback")

    @classmethod
    def from_config(cls, config: VisionConfig) -> "VisionClient":
        """Gemini as primary; Groq as fallback only when a Groq key is present."""
        primary = GeminiProvider(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            base_url=config.gemini_base_url,
            timeout=config.timeout,
        )
        fallback = None
        if config.groq_api_key:
            fallback = GroqProvider(
                api_key=config.groq_api_key,
                model=config.groq_model,
                base_url=config.groq_base_url,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )
        return cls(primary, fallback)

    async def aclose(self) -> None:
        await self.primary.aclose()
        if self.fallback is not None:
            await self.fallback.aclose()


_client: Optional[VisionClient] = None


def get_vision_client() -> VisionClient:
    global _client
    if _client is None:
        _client = VisionClient.from_config(VisionConfig.from_settings(get_settings()))
    return _client
