import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from app.features.audit.schemas.audit import CapturedImage
from app.features.audit.services.inference import InferenceClient
from app.platform.exceptions import InferenceError

IMAGES = [
    CapturedImage(data=b"first", mime_type="image/png"),
    CapturedImage(data=b"second", mime_type="image/jpeg"),
]

PROVIDER_REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_client(**create_kwargs) -> InferenceClient:
    openai_client = MagicMock()
    openai_client.chat.completions.create = AsyncMock(**create_kwargs)
    return InferenceClient(client=openai_client, model="test-vision-model")


def test_user_content_has_text_then_images_in_order():
    content = InferenceClient.build_user_content(IMAGES, "Audit these")

    assert content[0] == {"type": "text", "text": "Audit these"}
    assert [part["type"] for part in content[1:]] == ["image_url", "image_url"]
    assert content[1]["image_url"]["url"] == "data:image/png;base64," + base64.b64encode(b"first").decode()
    assert content[2]["image_url"]["url"].startswith("data:image/jpeg;base64,")


@pytest.mark.asyncio
async def test_infer_sends_one_call_with_budget():
    client = make_client(return_value=completion('{"score": 90}'))

    raw = await client.infer(IMAGES, "Audit these", max_tokens=2500)

    assert raw == '{"score": 90}'
    create = client.client.chat.completions.create
    create.assert_awaited_once()
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "test-vision-model"
    assert kwargs["max_tokens"] == 2500
    assert kwargs["messages"][0]["role"] == "system"
    assert len(kwargs["messages"][1]["content"]) == 3


@pytest.mark.asyncio
async def test_missing_client_is_an_inference_error():
    client = InferenceClient(client=None)
    client.client = None

    with pytest.raises(InferenceError) as exc_info:
        await client.infer(IMAGES, "Audit these", max_tokens=2000)

    assert exc_info.value.reason == "inference_failed"


@pytest.mark.asyncio
async def test_rate_limit_is_reported_as_quota():
    error = openai.RateLimitError(
        "rate limited",
        response=httpx.Response(429, request=PROVIDER_REQUEST),
        body=None,
    )
    client = make_client(side_effect=error)

    with pytest.raises(InferenceError, match="AI quota exceeded"):
        await client.infer(IMAGES, "Audit these", max_tokens=2000)


@pytest.mark.asyncio
async def test_connection_error_is_not_retried():
    client = make_client(side_effect=openai.APIConnectionError(request=PROVIDER_REQUEST))

    with pytest.raises(InferenceError):
        await client.infer(IMAGES, "Audit these", max_tokens=2000)

    assert client.client.chat.completions.create.await_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [None, "", "   "])
async def test_empty_completion_is_an_error(content):
    client = make_client(return_value=completion(content))

    with pytest.raises(InferenceError, match="empty"):
        await client.infer(IMAGES, "Audit these", max_tokens=2000)
