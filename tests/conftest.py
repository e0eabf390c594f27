"""Shared test fixtures for lmss-hosting tests."""

import pytest
from typing import Optional
from unittest.mock import AsyncMock, MagicMock


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_BASE_URL = "http://localhost:1234"

MOCK_MODEL_1 = "llama-3.2-3b-instruct"
MOCK_MODEL_2 = "qwen2.5-7b-instruct"
MOCK_MODELS = [MOCK_MODEL_1, MOCK_MODEL_2]

MOCK_MANIFEST_RESPONSE = {
    "data": [
        {"id": MOCK_MODEL_1, "object": "model"},
        {"id": MOCK_MODEL_2, "object": "model"},
    ]
}

MOCK_COMPLETION_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1699000000,
    "model": MOCK_MODEL_1,
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "The capital of France is Paris."
            },
            "finish_reason": "stop"
        }
    ],
    "usage": {
        "prompt_tokens": 10,
        "completion_tokens": 8,
        "total_tokens": 18
    }
}

MOCK_STREAMING_LINES = [
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","choices":[{"index":0,"delta":{"role":"assistant","content":""},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","choices":[{"index":0,"delta":{"content":"The"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","choices":[{"index":0,"delta":{"content":" capital"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","choices":[{"index":0,"delta":{"content":" is Paris."},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}',
    'data: [DONE]',
]


# ─────────────────────────────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────────────────────────────

def completion_response(content: Optional[str]):
    """Build a CompletionResponse with a single assistant choice."""
    from lmss_hosting.adapters.schema import CompletionResponse
    return CompletionResponse.model_validate({
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]
    })


def stream_chunks(*contents: Optional[str]):
    """Build StreamingChatResponse chunks carrying the given delta contents."""
    from lmss_hosting.adapters.schema import StreamingChatResponse
    return [
        StreamingChatResponse.model_validate(
            {"choices": [{"index": 0, "delta": {"content": c}}]}
        )
        for c in contents
    ]


def async_iter(items, fail_after: Optional[int] = None, error: Optional[Exception] = None):
    """
    Return a callable producing an async generator over items.

    With fail_after=N, the generator raises `error` once N items were yielded
    (fail_after=0 means the very first pull fails).
    """
    async def gen(*args, **kwargs):
        for i, item in enumerate(items):
            if fail_after is not None and i == fail_after:
                raise error
            yield item
        if fail_after is not None and fail_after >= len(items):
            raise error
    return gen


def make_client(
    healthy=True,
    models: Optional[list[str]] = None,
    current_model: Optional[str] = None,
) -> MagicMock:
    """
    Create a mock ChatClient.

    `healthy` may be a bool or an exception to raise from is_healthy().
    """
    client = MagicMock()
    client.base_url = MOCK_BASE_URL
    client.is_connected = True
    client.current_model = current_model

    if isinstance(healthy, BaseException):
        client.is_healthy = AsyncMock(side_effect=healthy)
    else:
        client.is_healthy = AsyncMock(return_value=healthy)

    client.get_available_models = AsyncMock(
        return_value=list(MOCK_MODELS if models is None else models)
    )
    client.send_message = AsyncMock(return_value="Hello there!")
    client.send_completion = AsyncMock(return_value=completion_response("Hello there!"))
    client.set_current_model = AsyncMock(return_value=True)
    client.execute_tool_workflow = AsyncMock()
    client.close = AsyncMock()
    client.send_message_stream = async_iter(["Hel", "lo"])
    client.send_completion_stream = async_iter(stream_chunks("Hel", "lo"))
    return client


# ─────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_client():
    """Healthy mock client with two models loaded."""
    return make_client()


@pytest.fixture
def service(mock_client):
    """LmssService over the healthy mock client."""
    from lmss_hosting.service import LmssService
    return LmssService(mock_client)


@pytest.fixture
def mock_completion_response():
    """Return mock /v1/chat/completions response."""
    return MOCK_COMPLETION_RESPONSE.copy()


@pytest.fixture
def mock_streaming_lines():
    """Return mock SSE lines for a streamed completion."""
    return MOCK_STREAMING_LINES.copy()
