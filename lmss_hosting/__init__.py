"""
Orchestration layer for LM Studio: readiness gating, conversations,
resilient streaming and a background monitor on top of a chat client.
"""

from lmss_hosting.conversation import ConversationManager
from lmss_hosting.errors import ErrorKind, classify_exception
from lmss_hosting.factory import create_client, create_monitor, create_service
from lmss_hosting.monitor import LmssMonitor, MonitorState
from lmss_hosting.readiness import ReadinessEvaluator, ReadinessResult
from lmss_hosting.service import ChatResult, LmssService

__all__ = [
    "ChatResult",
    "ConversationManager",
    "ErrorKind",
    "LmssMonitor",
    "LmssService",
    "MonitorState",
    "ReadinessEvaluator",
    "ReadinessResult",
    "classify_exception",
    "create_client",
    "create_monitor",
    "create_service",
]
