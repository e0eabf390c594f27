"""
LMStudioClient - httpx implementation of the ChatClient protocol.

Talks to a single LM Studio server through its OpenAI-compatible API:
    GET  /v1/models
    POST /v1/chat/completions   (plain JSON or SSE when stream=true)
"""

import json
import logging
from typing import AsyncGenerator, Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
)

from lmss_hosting.adapters.base import ToolHandler
from lmss_hosting.adapters.schema import (
    CompletionRequest,
    CompletionResponse,
    StreamingChatResponse,
    ToolCall,
    ToolWorkflowResult,
)
from lmss_hosting.config import (
    LmssSettings,
    Message,
    Role,
    get_retry_attempts,
    get_retry_max_wait,
    get_retry_min_wait,
)
from lmss_hosting.errors import (
    LMStudioError,
    NoModelAvailableError,
    ServerUnavailableError,
    error_for_status,
    is_retryable_error,
)

logger = logging.getLogger(__name__)


def parse_lm_studio_error(status_code: int, body: bytes) -> str:
    """Extract a user-friendly error message from an LM Studio error body."""
    text = body.decode(errors="replace")
    try:
        data = json.loads(text)
        # LM Studio typically returns {"error": {"message": "..."}}
        if isinstance(data, dict):
            error = data.get("error", {})
            if isinstance(error, dict):
                message = error.get("message", "")
                if message:
                    return message
            elif isinstance(error, str):
                return error
    except ValueError:
        pass
    return f"HTTP {status_code}: {text[:200]}"


def _retrying():
    return retry(
        stop=stop_after_attempt(get_retry_attempts()),
        wait=wait_exponential(multiplier=2, min=get_retry_min_wait(), max=get_retry_max_wait()),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


class LMStudioClient:
    """
    Chat client for one LM Studio server.

    Owns an httpx.AsyncClient; call close() (or use `async with`) when done.
    Safe to share between concurrent callers.
    """

    def __init__(
        self,
        settings: Optional[LmssSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or LmssSettings()
        self._base_url = self.settings.base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout_seconds, connect=10.0)
        )
        self._current_model: Optional[str] = self.settings.default_model
        self._connected = False

    async def __aenter__(self) -> "LMStudioClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def current_model(self) -> Optional[str]:
        return self._current_model

    async def close(self) -> None:
        await self._http.aclose()

    # ─────────────────────────────────────────────────────────────────
    # HTTP PLUMBING
    # ─────────────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, f"{self._base_url}{path}", **kwargs)
        except httpx.TransportError as e:
            self._connected = False
            raise ServerUnavailableError(
                f"Cannot reach LM Studio at {self._base_url}: {e}"
            ) from e
        self._connected = True
        if response.status_code >= 400:
            message = parse_lm_studio_error(response.status_code, response.content)
            raise error_for_status(response.status_code, f"LM Studio error: {message}")
        return response

    # ─────────────────────────────────────────────────────────────────
    # MODELS
    # ─────────────────────────────────────────────────────────────────

    async def is_healthy(self) -> bool:
        """True when the server answers the models endpoint."""
        try:
            await self._request("GET", "/v1/models")
        except LMStudioError as e:
            logger.debug(f"Health check against {self._base_url} failed: {e}")
            return False
        return True

    async def get_available_models(self) -> list[str]:
        @_retrying()
        async def fetch() -> list[str]:
            response = await self._request("GET", "/v1/models")
            data = response.json()
            # LM Studio returns {"data": [{"id": "model-name", ...}, ...]}
            return [m["id"] for m in data.get("data", [])]

        return await fetch()

    async def set_current_model(self, name: str) -> bool:
        models = await self.get_available_models()
        if name not in models:
            return False
        self._current_model = name
        return True

    async def _resolve_model(self) -> str:
        if self._current_model:
            return self._current_model
        models = await self.get_available_models()
        if not models:
            raise NoModelAvailableError()
        return models[0]

    async def _message_request(
        self, text: str, system_prompt: Optional[str], stream: bool
    ) -> CompletionRequest:
        messages = []
        if system_prompt:
            messages.append(Message.system(system_prompt))
        messages.append(Message.user(text))
        return CompletionRequest(
            model=await self._resolve_model(),
            messages=tuple(messages),
            stream=stream,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )

    # ─────────────────────────────────────────────────────────────────
    # COMPLETIONS
    # ─────────────────────────────────────────────────────────────────

    async def send_completion(self, request: CompletionRequest) -> CompletionResponse:
        """Non-streaming completion, retried on transient failures."""
        payload = request.to_payload()
        payload["stream"] = False

        @_retrying()
        async def post() -> CompletionResponse:
            response = await self._request("POST", "/v1/chat/completions", json=payload)
            return CompletionResponse.model_validate(response.json())

        logger.debug(f"Sending completion to {request.model} ({len(request.messages)} messages)")
        return await post()

    async def send_completion_stream(
        self, request: CompletionRequest
    ) -> AsyncGenerator[StreamingChatResponse, None]:
        """
        Stream a completion from the server.
        Yields parsed chunks as they arrive.
        Raises LMStudioError with user-friendly message on error.
        """
        payload = request.to_payload()
        payload["stream"] = True

        try:
            async with self._http.stream(
                "POST", f"{self._base_url}/v1/chat/completions", json=payload
            ) as response:
                self._connected = True
                if response.status_code >= 400:
                    # Read the error body for streaming responses
                    error_body = await response.aread()
                    message = parse_lm_studio_error(response.status_code, error_body)
                    raise error_for_status(
                        response.status_code,
                        f"LM Studio error for '{request.model}': {message}",
                    )

                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:]
                    if data.strip() == "[DONE]":
                        break
                    try:
                        yield StreamingChatResponse.model_validate_json(data)
                    except ValueError:
                        logger.debug(f"Skipping unparseable stream line: {data[:200]}")
                        continue
        except httpx.TransportError as e:
            self._connected = False
            raise ServerUnavailableError(
                f"Stream from {self._base_url} failed: {e}"
            ) from e

    async def send_message(self, text: str, system_prompt: Optional[str] = None) -> str:
        request = await self._message_request(text, system_prompt, stream=False)
        response = await self.send_completion(request)
        return response.content or ""

    async def send_message_stream(
        self, text: str, system_prompt: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        request = await self._message_request(text, system_prompt, stream=True)
        chunks = self.send_completion_stream(request)
        try:
            async for chunk in chunks:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        finally:
            await chunks.aclose()

    # ─────────────────────────────────────────────────────────────────
    # TOOL WORKFLOW
    # ─────────────────────────────────────────────────────────────────

    async def execute_tool_workflow(
        self, request: CompletionRequest, tool_handler: ToolHandler
    ) -> ToolWorkflowResult:
        """
        Run the tool loop:
          model → tool calls → handler → model → ... → final answer

        A handler failure is reported back to the model as the tool output
        instead of aborting the workflow.
        """
        messages = list(request.messages)
        executed: list[ToolCall] = []
        max_rounds = self.settings.max_tool_rounds

        for round_index in range(max_rounds + 1):
            response = await self.send_completion(request.with_messages(messages))
            if not response.choices:
                return ToolWorkflowResult(
                    success=False,
                    executed_tool_calls=executed,
                    error_message="Model returned no choices",
                )

            reply = response.choices[0].message
            if not reply.tool_calls:
                logger.debug(
                    f"Tool workflow finished after {round_index} rounds, {len(executed)} tool calls"
                )
                return ToolWorkflowResult(
                    success=True,
                    final_response=reply.content or "",
                    executed_tool_calls=executed,
                )

            if round_index == max_rounds:
                break

            messages.append(Message(
                role=Role.ASSISTANT,
                content=reply.content,
                tool_calls=tuple(reply.tool_calls),
            ))
            for call in reply.tool_calls:
                logger.debug(f"Executing tool {call.name} with args: {call.function.arguments}")
                try:
                    output = await tool_handler(call)
                except Exception as e:
                    logger.warning(f"Tool {call.name} failed: {e}")
                    output = f"Error: {e}"
                executed.append(call)
                messages.append(Message(role=Role.TOOL, content=output, tool_call_id=call.id))

        return ToolWorkflowResult(
            success=False,
            executed_tool_calls=executed,
            error_message=f"Tool workflow exceeded {max_rounds} rounds without a final response",
        )
