"""
Factory helpers for building a client, service or monitor.

With no arguments, settings are read from the environment (see config.py).
"""

from typing import Callable, Optional

from lmss_hosting.adapters.lmstudio import LMStudioClient
from lmss_hosting.config import LmssSettings, MonitorIntervals
from lmss_hosting.monitor import IterationHook, LmssMonitor
from lmss_hosting.service import LmssService


def _resolve_settings(
    settings: Optional[LmssSettings],
    configure: Optional[Callable[[LmssSettings], None]],
) -> LmssSettings:
    if settings is None:
        settings = LmssSettings.from_env()
    if configure is not None:
        settings = settings.model_copy()
        configure(settings)
    return settings


def create_client(
    settings: Optional[LmssSettings] = None,
    configure: Optional[Callable[[LmssSettings], None]] = None,
) -> LMStudioClient:
    return LMStudioClient(_resolve_settings(settings, configure))


def create_service(
    settings: Optional[LmssSettings] = None,
    configure: Optional[Callable[[LmssSettings], None]] = None,
) -> LmssService:
    """
    Create an LmssService backed by a new LMStudioClient.

    Args:
        settings: Explicit settings; read from the environment when omitted
        configure: Optional callback that adjusts a copy of the settings

    Example:
        service = create_service(configure=lambda s: setattr(s, "default_model", "qwen2.5-7b"))
    """
    return LmssService(create_client(settings, configure))


def create_monitor(
    settings: Optional[LmssSettings] = None,
    on_iteration: Optional[IterationHook] = None,
    intervals: Optional[MonitorIntervals] = None,
) -> LmssMonitor:
    return LmssMonitor(create_service(settings), on_iteration=on_iteration, intervals=intervals)
