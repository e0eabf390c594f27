"""
Readiness evaluation: turns health and model-list signals into a verdict.

evaluate() is the single chokepoint that guarantees every higher-level
operation can gate on a value rather than an exception.
"""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator

from lmss_hosting.adapters.base import ChatClient
from lmss_hosting.errors import ErrorKind, classify_exception

logger = logging.getLogger(__name__)


class ReadinessResult(BaseModel):
    """
    Tri-state readiness verdict with diagnostics.

    Recomputed on every check and immutable once built.
    Invariant: is_ready == (server_healthy and has_models).
    """
    model_config = ConfigDict(frozen=True)

    is_ready: bool
    server_healthy: bool
    has_models: bool
    model_count: int = 0
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    status_description: str = ""
    technical_details: Optional[str] = None

    @model_validator(mode="after")
    def _check_invariant(self) -> "ReadinessResult":
        if self.is_ready != (self.server_healthy and self.has_models):
            raise ValueError("is_ready must equal server_healthy and has_models")
        if not self.server_healthy and self.error_kind is not ErrorKind.SERVER_UNAVAILABLE:
            raise ValueError("an unhealthy server is always reported as unavailable")
        return self

    @classmethod
    def ready(cls, model_count: int) -> "ReadinessResult":
        return cls(
            is_ready=True,
            server_healthy=True,
            has_models=True,
            model_count=model_count,
            status_description=f"✅ LM Studio is ready ({model_count} model(s) loaded)",
        )

    @classmethod
    def not_ready(
        cls,
        kind: ErrorKind,
        server_healthy: Optional[bool] = None,
        technical_details: Optional[str] = None,
    ) -> "ReadinessResult":
        if server_healthy is None:
            server_healthy = kind is not ErrorKind.SERVER_UNAVAILABLE
        return cls(
            is_ready=False,
            server_healthy=server_healthy,
            has_models=False,
            error_kind=kind,
            message=kind.user_message,
            status_description=kind.status_description,
            technical_details=technical_details,
        )

    @classmethod
    def from_exception(
        cls, exc: BaseException, server_healthy: Optional[bool] = None
    ) -> "ReadinessResult":
        return cls.not_ready(
            classify_exception(exc),
            server_healthy=server_healthy,
            technical_details=str(exc),
        )


class ReadinessEvaluator:
    """Classifies server state before any request is attempted."""

    def __init__(self, client: ChatClient):
        self.client = client

    async def evaluate(self) -> ReadinessResult:
        try:
            healthy = await self.client.is_healthy()
        except Exception as e:
            logger.error("Failed to check LM Studio server health", exc_info=True)
            return ReadinessResult.not_ready(
                ErrorKind.SERVER_UNAVAILABLE, server_healthy=False, technical_details=str(e)
            )

        if not healthy:
            logger.warning("LM Studio server health check failed")
            return ReadinessResult.not_ready(ErrorKind.SERVER_UNAVAILABLE)

        try:
            models = await self.client.get_available_models()
        except Exception as e:
            logger.error("Failed to list models on LM Studio server", exc_info=True)
            return ReadinessResult.from_exception(e, server_healthy=True)

        if not models:
            logger.info("LM Studio server is healthy but no models are loaded")
            return ReadinessResult.not_ready(ErrorKind.NO_MODELS_LOADED)

        return ReadinessResult.ready(len(models))
