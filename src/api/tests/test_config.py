"""Tests for server configuration and wiring."""
import logging

import pytest

from api.errors import ConfigurationError
from bridge.handler import ColorMeHandler
from config import ColorMeConfig
from logging_config import LogContext, MCPLogger, configure_logging


@pytest.fixture
def colorme_env(monkeypatch):
    """Complete environment for the server."""
    env = {
        "COLORME_CLIENT_ID": "env_client_id",
        "COLORME_CLIENT_SECRET": "env_client_secret",
        "COOKIE_ENCRYPTION_KEY": "env-cookie-key",
        "COLORME_PUBLIC_URL": "https://mcp.example.com",
        "COLORME_PORT": "9000",
        "COLORME_MCP_CLIENTS": '{"abc123": ["https://client.example.com/oauth/callback"]}',
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


class TestColorMeConfig:
    """Test environment-driven configuration."""

    def test_from_env(self, colorme_env):
        config = ColorMeConfig.from_env()

        assert config.client_id == "env_client_id"
        assert config.client_secret == "env_client_secret"
        assert config.cookie_encryption_key == "env-cookie-key"
        assert config.public_url == "https://mcp.example.com"
        assert config.port == 9000
        assert config.transport == "sse"
        assert config.mcp_clients == {"abc123": ["https://client.example.com/oauth/callback"]}

    def test_defaults_point_at_color_me_shop(self, monkeypatch):
        for key in ("COLORME_AUTHORIZE_URL", "COLORME_TOKEN_URL", "COLORME_API_BASE_URL"):
            monkeypatch.delenv(key, raising=False)
        config = ColorMeConfig.from_env()

        assert config.upstream_oauth_config().authorize_url == "https://api.shop-pro.jp/oauth/authorize"
        assert config.upstream_oauth_config().token_url == "https://api.shop-pro.jp/oauth/token"
        assert config.rest_config().base_url == "https://api.shop-pro.jp/v1"

    def test_validate_credentials_lists_missing(self):
        config = ColorMeConfig(client_id="cid")

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_credentials()

        assert exc_info.value.missing_fields == ["COLORME_CLIENT_SECRET", "COOKIE_ENCRYPTION_KEY"]

    def test_credential_status(self, colorme_env):
        status = ColorMeConfig.from_env().check_credential_status()

        assert status["ready_for_authorization"]
        assert status["registered_clients"] == 1
        assert "COLORME_CLIENT_SECRET configured" in status["messages"]

    def test_credential_status_incomplete(self):
        status = ColorMeConfig(client_id="").check_credential_status()

        assert not status["ready_for_authorization"]
        assert any("COLORME_CLIENT_ID missing" in m for m in status["messages"])
        assert any("No MCP clients registered" in m for m in status["messages"])


class TestBuildHandler:
    """Test wiring the bridge from configuration."""

    @pytest.mark.asyncio
    async def test_handler_from_config(self, colorme_env):
        from colorme_server import build_handler

        handler = build_handler(ColorMeConfig.from_env())

        assert isinstance(handler, ColorMeHandler)
        assert handler.public_url == "https://mcp.example.com"
        assert handler.oauth_config.client_secret == "env_client_secret"
        client = await handler.auth_server.lookup_client("abc123")
        assert client.redirect_uris == ["https://client.example.com/oauth/callback"]

    def test_missing_credentials_refuse_to_start(self):
        from colorme_server import build_handler

        with pytest.raises(ConfigurationError):
            build_handler(ColorMeConfig(client_id="cid"))


class TestLogging:
    """Test server-level event logging."""

    def test_plain_logger_events(self, caplog):
        event_logger = MCPLogger(logging.getLogger("colorme-test"))

        with caplog.at_level(logging.INFO, logger="colorme-test"):
            event_logger.auth_event("client_approved", client_id="abc123")
            event_logger.security_event("invalid_state", reason="state is missing")

        assert "event_type=client_approved" in caplog.text
        assert "context=authentication" in caplog.text
        assert "context=security" in caplog.text
        assert caplog.records[1].levelno == logging.WARNING

    def test_fixed_context_overrides(self, caplog):
        event_logger = MCPLogger(logging.getLogger("colorme-test"), context=LogContext.SECURITY)

        with caplog.at_level(logging.INFO, logger="colorme-test"):
            event_logger.configuration_event("Starting")

        assert "context=security" in caplog.text

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            configure_logging(level="LOUD", structured=False)
