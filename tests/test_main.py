"""
Tests for application assembly and the console entry point.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient

from auth_relay.gateway.main import build_pipeline, create_app, main, parse_args
from auth_relay.gateway.middleware import (
    AllowlistCORSMiddleware,
    ErrorHandlerMiddleware,
    HealthProbeMiddleware,
    HTTPSEnforcementMiddleware,
    SecurityHeadersMiddleware,
)
from auth_relay.provider.client import HttpAuthProvider
from auth_relay.provider.proxy import AuthProviderProxy
from auth_relay.shared.logging_utils import GatewayLogger

from conftest import TEST_SECRET, make_config


class TestCreateApp:
    """Test cases for create_app()."""

    def test_pipeline_order(self):
        """Test that stages are listed outermost first."""
        config = make_config()
        stages = build_pipeline(config, config.build_allowlist(), GatewayLogger("gateway"))

        assert [stage.cls for stage in stages] == [
            SecurityHeadersMiddleware,
            ErrorHandlerMiddleware,
            HealthProbeMiddleware,
            HTTPSEnforcementMiddleware,
            AllowlistCORSMiddleware,
        ]

    def test_default_components(self):
        config = make_config()
        app = create_app(config)

        assert isinstance(app.state.relay.auth_provider, HttpAuthProvider)
        assert isinstance(app.state.proxy, AuthProviderProxy)
        assert app.state.relay.allowlist is app.state.allowlist
        assert app.state.config is config

    def test_lifespan_shares_one_client(self):
        """Test that default components share a pooled client while running."""
        app = create_app(make_config())
        provider = app.state.relay.auth_provider
        proxy = app.state.proxy

        with TestClient(app):
            assert provider.client is not None
            assert provider.client is proxy.client

        assert provider.client is None
        assert proxy.client is None


class TestParseArgs:
    """Test cases for parse_args()."""

    def test_defaults(self):
        args = parse_args([])

        assert args.host is None
        assert args.port is None
        assert args.log_level == "info"

    def test_overrides(self):
        args = parse_args(["--host", "127.0.0.1", "--port", "9000", "--log-level", "debug"])

        assert args.host == "127.0.0.1"
        assert args.port == 9000
        assert args.log_level == "debug"


class TestMain:
    """Test cases for the console entry point."""

    @patch("builtins.print")
    @patch("auth_relay.gateway.main.uvicorn.run")
    def test_main_serves_with_proxy_headers(self, mock_run, mock_print):
        with patch.dict("os.environ", {"BETTER_AUTH_SECRET": TEST_SECRET}, clear=True):
            exit_code = main(["--port", "9000"])

        assert exit_code == 0
        _, kwargs = mock_run.call_args
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 9000
        assert kwargs["proxy_headers"] is True

    @patch("builtins.print")
    @patch("auth_relay.gateway.main.uvicorn.run")
    def test_main_configuration_error(self, mock_run, mock_print):
        with patch.dict("os.environ", {}, clear=True):
            exit_code = main([])

        assert exit_code == 1
        mock_run.assert_not_called()
        assert "BETTER_AUTH_SECRET" in " ".join(str(call) for call in mock_print.call_args_list)
