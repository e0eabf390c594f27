"""Tests for lmss_hosting.factory."""

import os
from unittest.mock import patch

import pytest

from lmss_hosting.adapters.lmstudio import LMStudioClient
from lmss_hosting.config import LmssSettings, MonitorIntervals
from lmss_hosting.factory import create_client, create_monitor, create_service
from lmss_hosting.monitor import MonitorState
from lmss_hosting.service import LmssService


class TestFactory:

    @pytest.mark.asyncio
    async def test_create_client_from_env(self):
        with patch.dict(os.environ, {"LMSS_BASE_URL": "http://env-host:1234", "LMSS_MODEL": "m1"}):
            client = create_client()

        async with client:
            assert isinstance(client, LMStudioClient)
            assert client.base_url == "http://env-host:1234"
            assert client.current_model == "m1"

    @pytest.mark.asyncio
    async def test_configure_adjusts_a_copy(self):
        settings = LmssSettings(base_url="http://a:1234")

        def configure(s: LmssSettings) -> None:
            s.default_model = "pinned"

        async with create_service(settings, configure=configure) as service:
            assert isinstance(service, LmssService)
            assert service.current_model == "pinned"
        assert settings.default_model is None

    @pytest.mark.asyncio
    async def test_create_monitor(self):
        intervals = MonitorIntervals(iteration=5)

        async def hook(service):
            pass

        monitor = create_monitor(LmssSettings(), on_iteration=hook, intervals=intervals)

        assert monitor.state is MonitorState.IDLE
        assert monitor.on_iteration is hook
        assert monitor.intervals.iteration == 5
        await monitor.close()
