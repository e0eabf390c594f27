"""
ConversationManager - ordered message history for multi-turn chat.

Pure in-memory state owned by the caller. History is append-only:
nothing is ever removed or reordered, and the system prompt (if any)
is always sent first.

Not safe for concurrent turns: callers must not run two turn
operations on the same conversation at once.
"""

from typing import Any, Optional

from lmss_hosting.adapters.schema import CompletionRequest, CompletionResponse
from lmss_hosting.config import Message


class ConversationManager:
    """Accumulates a conversation and turns it into completion requests."""

    def __init__(self, system_prompt: Optional[str] = None):
        self._system_prompt = system_prompt or None
        self._history: list[Message] = []

    @property
    def system_prompt(self) -> Optional[str]:
        return self._system_prompt

    @property
    def messages(self) -> tuple[Message, ...]:
        """History in insertion order, excluding the system prompt."""
        return tuple(self._history)

    @property
    def message_count(self) -> int:
        return len(self._history)

    def add_user_message(self, text: str) -> None:
        self._history.append(Message.user(text))

    def add_assistant_message(self, text: str) -> None:
        self._history.append(Message.assistant(text))

    def update_with_response(self, response: CompletionResponse) -> None:
        """Record the first choice of a completion as the assistant reply."""
        content = response.content
        if content:
            self.add_assistant_message(content)

    def to_completion_request(
        self, model: str, stream: bool = False, **options: Any
    ) -> CompletionRequest:
        """
        Build a request from the current state.

        Args:
            model: Model ID to address
            stream: Whether the request asks for SSE streaming
            **options: Extra CompletionRequest fields (tools, temperature, ...)
        """
        messages: list[Message] = []
        if self._system_prompt:
            messages.append(Message.system(self._system_prompt))
        messages.extend(self._history)
        return CompletionRequest(model=model, messages=tuple(messages), stream=stream, **options)

    def __repr__(self) -> str:
        return f"ConversationManager(messages={self.message_count}, system_prompt={self._system_prompt!r})"
