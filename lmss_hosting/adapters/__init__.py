"""
Chat client capability for the service layer.

Protocol defines WHAT, implementations define HOW.
"""

from .base import ChatClient, ToolHandler
from .lmstudio import LMStudioClient

__all__ = ["ChatClient", "LMStudioClient", "ToolHandler"]
