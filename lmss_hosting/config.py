"""
Configuration constants and Pydantic models for lmss-hosting.
"""

import os
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_BASE_URL: str = "http://localhost:1234"
DEFAULT_TIMEOUT_SECONDS: int = 300  # 5 minutes
DEFAULT_TEMPERATURE: float = 0.7
DEFAULT_MAX_TOKENS: int = -1  # LM Studio: -1 means "until the model stops"
DEFAULT_MAX_TOOL_ROUNDS: int = 5


# ─────────────────────────────────────────────────────────────────────
# MONITOR DELAYS (seconds)
# ─────────────────────────────────────────────────────────────────────

READY_WAIT_NO_MODELS_SECONDS: float = 10
READY_WAIT_SERVER_DOWN_SECONDS: float = 30
READY_WAIT_ERROR_SECONDS: float = 15

RUNNING_SERVER_DOWN_SECONDS: float = 120
RUNNING_NO_MODELS_SECONDS: float = 30
RUNNING_ITERATION_SECONDS: float = 60
RUNNING_ERROR_SECONDS: float = 30


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def _int_from_env(key: str, default: int) -> int:
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_base_url() -> str:
    """
    Get the LM Studio server URL from environment or default.

    Set LMSS_BASE_URL in .env (default: http://localhost:1234).
    """
    value = os.environ.get("LMSS_BASE_URL", "").strip()
    return (value or DEFAULT_BASE_URL).rstrip("/")


def get_default_model() -> Optional[str]:
    """Get the pinned model from LMSS_MODEL, or None to use the first loaded model."""
    value = os.environ.get("LMSS_MODEL", "").strip()
    return value or None


def get_timeout_seconds() -> int:
    """Request timeout from LMSS_TIMEOUT_SECONDS (default: 300)."""
    return _int_from_env("LMSS_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)


def get_max_tool_rounds() -> int:
    """Tool workflow round limit from LMSS_MAX_TOOL_ROUNDS (default: 5)."""
    return _int_from_env("LMSS_MAX_TOOL_ROUNDS", DEFAULT_MAX_TOOL_ROUNDS)


def get_retry_attempts() -> int:
    """
    Get max retry attempts from environment or default.

    Set LMSS_RETRY_ATTEMPTS in .env (default: 3).
    """
    return _int_from_env("LMSS_RETRY_ATTEMPTS", 3)


def get_retry_min_wait() -> int:
    """Minimum wait between retries in seconds (LMSS_RETRY_MIN_WAIT, default: 1)."""
    return _int_from_env("LMSS_RETRY_MIN_WAIT", 1)


def get_retry_max_wait() -> int:
    """Maximum wait between retries in seconds (LMSS_RETRY_MAX_WAIT, default: 10)."""
    return _int_from_env("LMSS_RETRY_MAX_WAIT", 10)


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseModel):
    """A single chat message.

    Conversations only ever hold system, user and assistant messages.
    The tool role and the tool_calls/tool_call_id fields are used by the
    tool workflow when it feeds results back to the model.
    """
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Optional[str] = None
    tool_calls: Optional[tuple[Any, ...]] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    def to_openai(self) -> dict:
        """Convert to OpenAI API message format."""
        result: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            result["tool_calls"] = [
                tc.model_dump(exclude_none=True) if isinstance(tc, BaseModel) else tc
                for tc in self.tool_calls
            ]
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        return result


class LmssSettings(BaseModel):
    """Connection and request settings for the LM Studio client."""
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    default_model: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS

    @classmethod
    def from_env(cls) -> "LmssSettings":
        return cls(
            base_url=get_base_url(),
            timeout_seconds=get_timeout_seconds(),
            default_model=get_default_model(),
            max_tool_rounds=get_max_tool_rounds(),
        )


class MonitorIntervals(BaseModel):
    """Delays used by the background monitor, in seconds."""
    ready_wait_no_models: float = Field(default=READY_WAIT_NO_MODELS_SECONDS, ge=0)
    ready_wait_server_down: float = Field(default=READY_WAIT_SERVER_DOWN_SECONDS, ge=0)
    ready_wait_error: float = Field(default=READY_WAIT_ERROR_SECONDS, ge=0)
    server_down: float = Field(default=RUNNING_SERVER_DOWN_SECONDS, ge=0)
    no_models: float = Field(default=RUNNING_NO_MODELS_SECONDS, ge=0)
    iteration: float = Field(default=RUNNING_ITERATION_SECONDS, ge=0)
    error: float = Field(default=RUNNING_ERROR_SECONDS, ge=0)
