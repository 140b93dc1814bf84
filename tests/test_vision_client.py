import base64
import json

import httpx
import pytest

from app.core.errors import BothProvidersFailed, NoFallbackConfigured, ProviderError
from app.services.vision_client import (
    FALLBACK_PROMPT,
    PRIMARY_PROMPT,
    GeminiProvider,
    GroqProvider,
    VisionClient,
    VisionConfig,
)


@pytest.mark.asyncio
async def test_primary_success_never_calls_fallback(fake_provider_cls):
    primary = fake_provider_cls("gemini", text="Coca-Cola")
    fallback = fake_provider_cls("groq", text="unused")
    client = VisionClient(primary, fallback)

    result = await client.analyze(b"jpeg", "image/jpeg")
    assert result.text == "Coca-Cola"
    assert result.provider == "gemini"
    assert result.role == "primary"
    assert len(primary.calls) == 1
    assert primary.calls[0]["prompt"] == PRIMARY_PROMPT
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_fallback_used_once_after_primary_failure(fake_provider_cls):
    primary = fake_provider_cls("gemini", error=ProviderError("gemini", "HTTP 429: quota"))
    fallback = fake_provider_cls("groq", text="Pepsi")
    client = VisionClient(primary, fallback)

    result = await client.analyze(b"jpeg", "image/jpeg")
    assert result.text == "Pepsi"
    assert result.provider == "groq"
    assert result.role == "fallback"
    assert len(primary.calls) == 1
    assert len(fallback.calls) == 1
    assert fallback.calls[0]["prompt"] == FALLBACK_PROMPT
    assert fallback.calls[0]["image"] == b"jpeg"


@pytest.mark.asyncio
async def test_unexpected_primary_exception_also_falls_back(fake_provider_cls):
    primary = fake_provider_cls("gemini", error=RuntimeError("boom"))
    fallback = fake_provider_cls("groq", text="Sprite")
    result = await VisionClient(primary, fallback).analyze(b"x")
    assert result.role == "fallback"


@pytest.mark.asyncio
async def test_no_fallback_configured(fake_provider_cls):
    primary = fake_provider_cls("gemini", error=ProviderError("gemini", "timeout"))
    client = VisionClient(primary, None)
    with pytest.raises(NoFallbackConfigured) as exc:
        await client.analyze(b"x")
    assert "timeout" in str(exc.value)
    assert len(primary.calls) == 1


@pytest.mark.asyncio
async def test_both_failed_names_both_errors(fake_provider_cls):
    primary = fake_provider_cls("gemini", error=ProviderError("gemini", "HTTP 500: upstream"))
    fallback = fake_provider_cls("groq", error=ProviderError("groq", "HTTP 401: bad key"))
    client = VisionClient(primary, fallback)
    with pytest.raises(BothProvidersFailed) as exc:
        await client.analyze(b"x")
    msg = str(exc.value)
    assert "HTTP 500: upstream" in msg
    assert "HTTP 401: bad key" in msg
    assert len(primary.calls) == 1
    assert len(fallback.calls) == 1


def test_client_from_config_fallback_only_with_groq_key():
    assert VisionClient.from_config(VisionConfig(gemini_api_key="g")).fallback is None
    config = VisionConfig(gemini_api_key="g", gemini_model="gemini-x", groq_api_key="q", groq_model="llama-y", timeout=5)
    client = VisionClient.from_config(config)
    assert isinstance(client.primary, GeminiProvider)
    assert (client.primary.api_key, client.primary.model) == ("g", "gemini-x")
    assert isinstance(client.fallback, GroqProvider)
    assert (client.fallback.api_key, client.fallback.model) == ("q", "llama-y")


def _mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_gemini_request_and_response_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "- Lays\n"}, {"text": "- Pepsi"}]}}]},
        )

    provider = GeminiProvider(api_key="secret", client=_mock_client(handler))
    text = await provider.describe("list products", b"\xff\xd8jpeg", "image/jpeg")
    await provider.aclose()

    assert text == "- Lays\n- Pepsi"
    assert seen["path"].endswith("/models/gemini-2.5-flash:generateContent")
    assert seen["key"] == "secret"
    parts = seen["body"]["contents"][0]["parts"]
    assert parts[0] == {"text": "list products"}
    assert parts[1]["inline_data"]["mime_type"] == "image/jpeg"
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"\xff\xd8jpeg"


@pytest.mark.asyncio
async def test_gemini_http_error_becomes_provider_error():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "quota exceeded"}})

    provider = GeminiProvider(api_key="k", client=_mock_client(handler))
    with pytest.raises(ProviderError) as exc:
        await provider.describe("p", b"x", "image/jpeg")
    assert "HTTP 429" in str(exc.value)


@pytest.mark.asyncio
async def test_gemini_blocked_prompt_is_a_failure():
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    provider = GeminiProvider(api_key="k", client=_mock_client(handler))
    with pytest.raises(ProviderError) as exc:
        await provider.describe("p", b"x", "image/jpeg")
    assert "SAFETY" in str(exc.value)


@pytest.mark.asyncio
async def test_gemini_without_key_fails_without_network():
    def handler(request):  # pragma: no cover - must not be reached
        raise AssertionError("no request expected")

    provider = GeminiProvider(api_key="", client=_mock_client(handler))
    with pytest.raises(ProviderError):
        await provider.describe("p", b"x", "image/jpeg")


@pytest.mark.asyncio
async def test_groq_request_and_response_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "  Red Bull\nMonster  "}}]})

    provider = GroqProvider(api_key="gk", client=_mock_client(handler))
    text = await provider.describe("list", b"img", "image/jpeg")

    assert text == "Red Bull\nMonster"
    assert seen["path"].endswith("/chat/completions")
    assert seen["auth"] == "Bearer gk"
    body = seen["body"]
    assert body["model"] == "meta-llama/llama-4-scout-17b-16e-instruct"
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 1024
    image_part = body["messages"][0]["content"][1]
    assert image_part["image_url"]["url"] == "data:image/jpeg;base64," + base64.b64encode(b"img").decode()


@pytest.mark.asyncio
async def test_groq_malformed_payload():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    provider = GroqProvider(api_key="gk", client=_mock_client(handler))
    with pytest.raises(ProviderError):
        await provider.describe("p", b"x", "image/jpeg")


@pytest.mark.asyncio
async def test_transport_error_triggers_fallback_end_to_end():
    def down(request):
        raise httpx.ConnectError("connection refused", request=request)

    def groq_ok(request):
        return httpx.Response(200, json={"choices": [{"message": {"content": "Fanta"}}]})

    primary = GeminiProvider(api_key="k", client=_mock_client(down))
    fallback = GroqProvider(api_key="q", client=_mock_client(groq_ok))
    result = await VisionClient(primary, fallback).analyze(b"x")
    assert (result.text, result.provider, result.role) == ("Fanta", "groq", "fallback")
