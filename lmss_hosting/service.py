"""
LmssService - orchestration layer in front of an LM Studio chat client.

Every public operation gates on a readiness check first, then talks to the
client. Failures from the client are converted at this boundary into data
(a ChatResult, a synthetic stream item, False, None or an empty list),
chosen per operation. Two things always propagate as exceptions:
  - asyncio.CancelledError
  - NoModelAvailableError, when no model can be resolved for a request
"""

import logging
from typing import Any, AsyncGenerator, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from lmss_hosting.adapters.base import ChatClient, ToolHandler
from lmss_hosting.adapters.schema import (
    CompletionRequest,
    JsonSchema,
    ResponseFormat,
    ServerStatus,
    Tool,
    ToolWorkflowResult,
)
from lmss_hosting.config import Message
from lmss_hosting.conversation import ConversationManager
from lmss_hosting.errors import (
    ErrorKind,
    NoModelAvailableError,
    classify_exception,
    user_message_for,
)
from lmss_hosting.readiness import ReadinessEvaluator, ReadinessResult
from lmss_hosting.streaming import delta_content, error_chunk, error_text, open_stream

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatResult(BaseModel):
    """Tagged success/failure result of a one-shot chat."""
    model_config = ConfigDict(frozen=True)

    success: bool
    response: str = ""
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    technical_details: Optional[str] = None

    @property
    def user_friendly_error(self) -> str:
        return self.error_message or ""

    @classmethod
    def create_success(cls, response: str) -> "ChatResult":
        return cls(success=True, response=response)

    @classmethod
    def create_failure(
        cls, kind: ErrorKind, technical_details: Optional[str] = None
    ) -> "ChatResult":
        return cls(
            success=False,
            error_kind=kind,
            error_message=kind.user_message,
            technical_details=technical_details,
        )

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ChatResult":
        return cls.create_failure(classify_exception(exc), technical_details=str(exc))


def _status_text(readiness: ReadinessResult) -> str:
    return f"{readiness.status_description}\n{readiness.message}"


class LmssService:
    """
    Service facade composing readiness gating, conversations and streaming.

    Holds no per-call state, so independent operations may run
    concurrently. The client is borrowed: close() forwards disposal to it,
    and should only be called once in-flight operations have finished.

    Usage:
        service = LmssService(LMStudioClient(settings))
        result = await service.chat("Hello")
        async for chunk in service.chat_stream("Tell me a story"):
            print(chunk, end="")
    """

    def __init__(self, client: ChatClient):
        self.client = client
        self._readiness = ReadinessEvaluator(client)

    async def __aenter__(self) -> "LmssService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def current_model(self) -> Optional[str]:
        return self.client.current_model

    async def close(self) -> None:
        await self.client.close()

    # ─────────────────────────────────────────────────────────────────
    # READINESS
    # ─────────────────────────────────────────────────────────────────

    async def check_readiness(self) -> ReadinessResult:
        """Classify server state. Never raises except on cancellation."""
        return await self._readiness.evaluate()

    async def is_ready(self) -> bool:
        return (await self.check_readiness()).is_ready

    async def _resolve_model(self) -> str:
        """Pinned model first, else the first loaded model."""
        if self.client.current_model:
            return self.client.current_model
        models = await self.client.get_available_models()
        if not models:
            raise NoModelAvailableError()
        return models[0]

    # ─────────────────────────────────────────────────────────────────
    # ONE-SHOT CHAT
    # ─────────────────────────────────────────────────────────────────

    async def chat(self, message: str, system_prompt: Optional[str] = None) -> ChatResult:
        readiness = await self.check_readiness()
        if not readiness.is_ready:
            logger.warning(f"Cannot send message: {readiness.message}")
            return ChatResult.create_failure(
                readiness.error_kind or ErrorKind.UNKNOWN, readiness.technical_details
            )

        try:
            logger.debug(f"Sending chat message: {message}")
            response = await self.client.send_message(message, system_prompt)
        except Exception as e:
            logger.error(f"Failed to send chat message: {message}", exc_info=True)
            return ChatResult.from_exception(e)

        logger.debug(f"Received chat response: {response}")
        return ChatResult.create_success(response)

    async def send_message(self, message: str, system_prompt: Optional[str] = None) -> str:
        """Chat returning the reply, or the user-facing error text on failure."""
        result = await self.chat(message, system_prompt)
        return result.response if result.success else result.user_friendly_error

    async def chat_stream(
        self, message: str, system_prompt: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """
        Stream a one-shot reply.

        A server that is not ready yields one status item; a stream that
        fails to start yields one error item. Both end the stream.
        """
        readiness = await self.check_readiness()
        if not readiness.is_ready:
            logger.warning(f"Cannot stream message: {readiness.message}")
            yield _status_text(readiness)
            return

        logger.debug(f"Starting streaming chat message: {message}")
        stream = await open_stream(
            lambda: self.client.send_message_stream(message, system_prompt),
            error_text,
            description="streaming chat message",
        )
        try:
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()

    # ─────────────────────────────────────────────────────────────────
    # CONVERSATIONS
    # ─────────────────────────────────────────────────────────────────

    def start_conversation(self, system_prompt: Optional[str] = None) -> ConversationManager:
        logger.debug(f"Starting new conversation with system prompt: {system_prompt or 'none'}")
        return ConversationManager(system_prompt)

    async def continue_conversation(
        self, conversation: ConversationManager, user_message: str
    ) -> str:
        """
        Run one conversation turn and return the assistant reply.

        Returns status or error text instead of raising. The user message
        stays recorded even when the request fails afterwards; the
        assistant reply is recorded only for a successful turn.
        """
        readiness = await self.check_readiness()
        if not readiness.is_ready:
            logger.warning(f"Cannot continue conversation: {readiness.message}")
            return _status_text(readiness)

        conversation.add_user_message(user_message)

        try:
            model = await self._resolve_model()
            request = conversation.to_completion_request(model)
            response = await self.client.send_completion(request)
        except NoModelAvailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to continue conversation with message: {user_message}", exc_info=True)
            return user_message_for(e)

        conversation.update_with_response(response)
        logger.debug(f"Conversation continued. Message count: {conversation.message_count}")
        return response.content or ""

    async def continue_conversation_stream(
        self, conversation: ConversationManager, user_message: str
    ) -> AsyncGenerator[str, None]:
        """
        Run one streamed conversation turn.

        Non-empty fragments are yielded as they arrive and buffered; the
        buffer is recorded as a single assistant message only once the
        stream is fully drained. A synthetic error item is yielded but not
        recorded, and a mid-stream failure records nothing.
        """
        readiness = await self.check_readiness()
        if not readiness.is_ready:
            logger.warning(f"Cannot continue conversation stream: {readiness.message}")
            yield _status_text(readiness)
            return

        conversation.add_user_message(user_message)

        async def completion_chunks():
            model = await self._resolve_model()
            request = conversation.to_completion_request(model, stream=True)
            chunks = self.client.send_completion_stream(request)
            try:
                async for chunk in chunks:
                    yield chunk
            finally:
                await chunks.aclose()

        stream = await open_stream(
            completion_chunks,
            error_chunk,
            description="conversation stream",
            propagate=(NoModelAvailableError,),
        )

        parts: list[str] = []
        try:
            async for chunk in stream:
                content = delta_content(chunk)
                if content:
                    parts.append(content)
                    yield content
        finally:
            await stream.aclose()

        response_content = "".join(parts)
        if response_content and not stream.synthetic:
            conversation.add_assistant_message(response_content)

    # ─────────────────────────────────────────────────────────────────
    # STRUCTURED OUTPUT & TOOLS
    # ─────────────────────────────────────────────────────────────────

    def _single_turn(self, prompt: str, system_prompt: Optional[str]) -> tuple[Message, ...]:
        messages: list[Message] = []
        if system_prompt:
            messages.append(Message.system(system_prompt))
        messages.append(Message.user(prompt))
        return tuple(messages)

    async def generate_structured(
        self,
        prompt: str,
        schema: JsonSchema,
        output_type: type[T],
        system_prompt: Optional[str] = None,
    ) -> Optional[T]:
        """
        Generate output constrained to a JSON schema and parse it.

        Returns None when the server is not ready, the reply is empty,
        or the reply does not parse as output_type.
        """
        readiness = await self.check_readiness()
        if not readiness.is_ready:
            logger.warning(f"Cannot generate structured output: {readiness.message}")
            return None

        try:
            request = CompletionRequest(
                model=await self._resolve_model(),
                messages=self._single_turn(prompt, system_prompt),
                response_format=ResponseFormat.with_json_schema(schema),
            )
            response = await self.client.send_completion(request)
        except NoModelAvailableError:
            raise
        except Exception:
            logger.error(f"Failed to generate structured output for prompt: {prompt}", exc_info=True)
            return None

        content = response.content
        if not content:
            return None

        logger.debug(f"Generated structured output: {content}")
        try:
            return TypeAdapter(output_type).validate_json(content)
        except ValidationError as e:
            logger.error(f"Structured output did not match {output_type!r}: {e}")
            return None

    async def execute_with_tools(
        self,
        user_message: str,
        tools: Iterable[Tool],
        tool_handler: ToolHandler,
        system_prompt: Optional[str] = None,
    ) -> ToolWorkflowResult:
        """Wire up a tool workflow and delegate the call loop to the client."""
        readiness = await self.check_readiness()
        if not readiness.is_ready:
            logger.warning(f"Cannot execute tool workflow: {readiness.message}")
            kind = readiness.error_kind or ErrorKind.UNKNOWN
            return ToolWorkflowResult(
                success=False,
                final_response=_status_text(readiness),
                executed_tool_calls=[],
                error_message=kind.user_message,
            )

        try:
            request = CompletionRequest(
                model=await self._resolve_model(),
                messages=self._single_turn(user_message, system_prompt),
                tools=tuple(tools),
            )
            logger.debug(f"Executing tool workflow for message: {user_message}")
            result = await self.client.execute_tool_workflow(request, tool_handler)
        except NoModelAvailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to execute tool workflow for message: {user_message}", exc_info=True)
            return ToolWorkflowResult(
                success=False,
                final_response=user_message_for(e),
                executed_tool_calls=[],
                error_message=str(e),
            )

        logger.debug(
            f"Tool workflow completed. Success: {result.success}, "
            f"Tools executed: {len(result.executed_tool_calls)}"
        )
        return result

    # ─────────────────────────────────────────────────────────────────
    # MODELS & STATUS
    # ─────────────────────────────────────────────────────────────────

    async def switch_model(self, model_name: str) -> bool:
        try:
            logger.debug(f"Attempting to switch to model: {model_name}")
            success = await self.client.set_current_model(model_name)
        except Exception:
            logger.error(f"Error switching to model: {model_name}", exc_info=True)
            return False

        if success:
            logger.info(f"Successfully switched to model: {model_name}")
        else:
            logger.warning(f"Failed to switch to model: {model_name} (model not available)")
        return success

    async def get_available_models(self) -> list[str]:
        try:
            models = await self.client.get_available_models()
        except Exception:
            logger.error("Failed to get available models", exc_info=True)
            return []
        logger.debug(f"Retrieved {len(models)} available models")
        return list(models)

    async def get_server_status(self) -> ServerStatus:
        """Snapshot of server state; models are only listed when healthy."""
        try:
            healthy = await self.client.is_healthy()
            models: list[Any] = await self.client.get_available_models() if healthy else []
            return ServerStatus(
                is_healthy=healthy,
                available_models=tuple(models),
                current_model=self.client.current_model,
                base_url=self.client.base_url,
                is_connected=self.client.is_connected,
            )
        except Exception as e:
            logger.error("Failed to get server status", exc_info=True)
            return ServerStatus(
                is_healthy=False,
                available_models=(),
                current_model=None,
                base_url=self.client.base_url,
                is_connected=False,
                error_message=str(e),
            )
