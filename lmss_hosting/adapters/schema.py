"""
Request and response objects exchanged with the chat client.

Shapes follow LM Studio's OpenAI-compatible /v1/chat/completions API.
Requests are immutable once built; responses are parsed leniently
(extra fields from the server are ignored).
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from lmss_hosting.config import Message, Role


# ─────────────────────────────────────────────────────────────────────
# TOOLS
# ─────────────────────────────────────────────────────────────────────

class FunctionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class Tool(BaseModel):
    """OpenAI-format tool definition."""
    model_config = ConfigDict(frozen=True)

    type: str = "function"
    function: FunctionDefinition

    @classmethod
    def from_function(
        cls,
        name: str,
        description: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> "Tool":
        fields: dict[str, Any] = {"name": name, "description": description}
        if parameters is not None:
            fields["parameters"] = parameters
        return cls(function=FunctionDefinition(**fields))


class FunctionCall(BaseModel):
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """A tool call requested by the model."""
    id: str
    type: str = "function"
    function: FunctionCall

    @property
    def name(self) -> str:
        return self.function.name


class ToolWorkflowResult(BaseModel):
    """Outcome of a multi-round tool workflow."""
    success: bool
    final_response: str = ""
    executed_tool_calls: list[ToolCall] = Field(default_factory=list)
    error_message: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────
# STRUCTURED OUTPUT
# ─────────────────────────────────────────────────────────────────────

class JsonSchema(BaseModel):
    """A named JSON schema used to constrain model output."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    schema_: dict[str, Any] = Field(alias="schema")
    strict: bool = True

    @classmethod
    def from_model(cls, model: type[BaseModel], name: Optional[str] = None) -> "JsonSchema":
        return cls(name=name or model.__name__, schema=model.model_json_schema())


class ResponseFormat(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "json_schema"
    json_schema: Optional[JsonSchema] = None

    @classmethod
    def with_json_schema(cls, schema: JsonSchema) -> "ResponseFormat":
        return cls(type="json_schema", json_schema=schema)

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {"type": self.type}
        if self.json_schema is not None:
            payload["json_schema"] = self.json_schema.model_dump(by_alias=True)
        return payload


# ─────────────────────────────────────────────────────────────────────
# REQUESTS
# ─────────────────────────────────────────────────────────────────────

class CompletionRequest(BaseModel):
    """
    A single chat completion request.

    Built fresh for every turn and never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    model: str
    messages: tuple[Message, ...]
    stream: bool = False
    tools: Optional[tuple[Tool, ...]] = None
    response_format: Optional[ResponseFormat] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def with_messages(self, messages: list[Message]) -> "CompletionRequest":
        """Return a copy carrying a different message list."""
        return self.model_copy(update={"messages": tuple(messages)})

    def to_payload(self) -> dict:
        """Render the OpenAI-compatible JSON body."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_openai() for m in self.messages],
            "stream": self.stream,
        }
        if self.tools:
            payload["tools"] = [t.model_dump(exclude_none=True) for t in self.tools]
        if self.response_format is not None:
            payload["response_format"] = self.response_format.to_payload()
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload


# ─────────────────────────────────────────────────────────────────────
# RESPONSES
# ─────────────────────────────────────────────────────────────────────

class ResponseMessage(BaseModel):
    role: str = Role.ASSISTANT.value
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None


class Choice(BaseModel):
    index: int = 0
    message: ResponseMessage = Field(default_factory=ResponseMessage)
    finish_reason: Optional[str] = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResponse(BaseModel):
    id: Optional[str] = None
    model: Optional[str] = None
    choices: list[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None

    @property
    def content(self) -> Optional[str]:
        """Content of the first choice, if any."""
        if not self.choices:
            return None
        return self.choices[0].message.content


class Delta(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class StreamingChoice(BaseModel):
    index: int = 0
    delta: Delta = Field(default_factory=Delta)
    finish_reason: Optional[str] = None


class StreamingChatResponse(BaseModel):
    """One chunk of a streamed completion."""
    id: Optional[str] = None
    model: Optional[str] = None
    choices: list[StreamingChoice] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> "StreamingChatResponse":
        return cls(choices=[StreamingChoice(delta=Delta(role=Role.ASSISTANT.value, content=text))])


# ─────────────────────────────────────────────────────────────────────
# STATUS
# ─────────────────────────────────────────────────────────────────────

class ServerStatus(BaseModel):
    """Read-only snapshot of server state, rebuilt on every query."""
    model_config = ConfigDict(frozen=True)

    is_healthy: bool
    available_models: tuple[str, ...] = ()
    current_model: Optional[str] = None
    base_url: str = ""
    is_connected: bool = False
    error_message: Optional[str] = None
