"""
Tests for CanvasConfig environment loading.
"""

import logging

from flowcanvas.config.canvas_config import CanvasConfig


class TestCanvasConfig:

    def test_defaults(self):
        config = CanvasConfig.get_default_instance(environ={})

        assert config.api_base_url == "http://localhost:3000/api"
        assert config.poll_interval == 2.0
        assert (config.node_width, config.node_height) == (160, 80)
        assert config.placement_max_attempts == 50
        assert config.focus_query_param == "node"

    def test_environment_overrides(self):
        config = CanvasConfig.get_default_instance(environ={
            "FLOWCANVAS_API_BASE_URL": "https://docs.example.com/api",
            "FLOWCANVAS_API_TOKEN": "tok",
            "FLOWCANVAS_POLL_INTERVAL": "0.5",
            "FLOWCANVAS_REQUEST_TIMEOUT": "10",
        })

        assert config.api_base_url == "https://docs.example.com/api"
        assert config.api_token == "tok"
        assert config.poll_interval == 0.5
        assert config.request_timeout == 10.0

    def test_invalid_value_falls_back_to_default(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = CanvasConfig.get_default_instance(
                environ={"FLOWCANVAS_POLL_INTERVAL": "fast"},
            )

        assert config.poll_interval == 2.0
        assert "FLOWCANVAS_POLL_INTERVAL" in caplog.text

    def test_config_name(self):
        assert CanvasConfig.get_config_name() == "canvas"
