"""
ChatClient Protocol - the capability the service layer is built on.

This is the WHAT (interface), not the HOW (implementation).
See lmstudio.py for the bundled httpx implementation.
"""

from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from lmss_hosting.adapters.schema import (
    CompletionRequest,
    CompletionResponse,
    StreamingChatResponse,
    ToolCall,
    ToolWorkflowResult,
)

# async handler(tool_call) -> tool output fed back to the model
ToolHandler = Callable[[ToolCall], Awaitable[str]]


class ChatClient(Protocol):
    """
    Contract for the chat client consumed by LmssService.

    Implementations must be safe for concurrent use by independent
    callers. Any method except the property accessors may raise;
    the service converts those failures at its own boundary.
    """

    @property
    def base_url(self) -> str:
        ...

    @property
    def is_connected(self) -> bool:
        """Whether the last request reached the server."""
        ...

    @property
    def current_model(self) -> Optional[str]:
        """Explicitly pinned model, or None. Never raises."""
        ...

    async def is_healthy(self) -> bool:
        ...

    async def get_available_models(self) -> list[str]:
        """
        Return the model IDs currently loaded on the server.

        Returns:
            List of model identifiers (e.g., ["llama-3.2-3b", "qwen2.5-7b"])
        """
        ...

    async def send_message(self, text: str, system_prompt: Optional[str] = None) -> str:
        ...

    def send_message_stream(
        self, text: str, system_prompt: Optional[str] = None
    ) -> AsyncIterator[str]:
        """
        Stream a one-shot reply as text fragments.

        The request is issued lazily, on the first pull.
        """
        ...

    async def send_completion(self, request: CompletionRequest) -> CompletionResponse:
        ...

    def send_completion_stream(
        self, request: CompletionRequest
    ) -> AsyncIterator[StreamingChatResponse]:
        ...

    async def execute_tool_workflow(
        self, request: CompletionRequest, tool_handler: ToolHandler
    ) -> ToolWorkflowResult:
        """
        Run the multi-round tool-call loop for a request carrying tools.

        Args:
            request: Request with tool definitions and the opening messages
            tool_handler: Called once per tool call requested by the model

        Returns:
            ToolWorkflowResult with the final reply and every executed call
        """
        ...

    async def set_current_model(self, name: str) -> bool:
        ...

    async def close(self) -> None:
        ...
