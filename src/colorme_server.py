"""Color Me Shop MCP Server implementation."""
from typing import Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from config import ColorMeConfig
from logging_config import MCPLogger, setup_mcp_logging
from __version__ import __version__
from bridge.approval import ApprovalDialog
from bridge.handler import ColorMeHandler, register_routes
from bridge.provider import ClientInfo, InMemoryAuthorizationServer

# Load environment variables
load_dotenv()

# Load configuration
config = ColorMeConfig.from_env()

# Setup logging
logger = setup_mcp_logging(config)

# Check credential status and provide helpful feedback
credential_status = config.check_credential_status()
if not credential_status["ready_for_authorization"]:
    logger.configuration_event(
        "Color Me Shop credentials incomplete; the authorization bridge cannot start",
        level="warning",
        messages=credential_status["messages"],
    )
else:
    logger.configuration_event(
        "Color Me Shop credentials loaded",
        messages=credential_status["messages"],
    )

# Create global MCP instance
mcp = FastMCP(
    "Color Me Shop MCP Server",
    version=__version__
)

# Store config and logger for tool access
mcp.config = config
mcp.logger = logger

_routes_registered = False


def build_handler(config: ColorMeConfig, event_logger: Optional[MCPLogger] = None) -> ColorMeHandler:
    """Wire the OAuth bridge from configuration.

    Raises:
        ConfigurationError: upstream credentials or the cookie key are missing
    """
    config.validate_credentials()

    auth_server = InMemoryAuthorizationServer(
        [
            ClientInfo(client_id=client_id, redirect_uris=redirect_uris)
            for client_id, redirect_uris in config.mcp_clients.items()
        ]
    )
    return ColorMeHandler(
        auth_server=auth_server,
        approval_dialog=ApprovalDialog(config.cookie_encryption_key),
        oauth_config=config.upstream_oauth_config(),
        rest_config=config.rest_config(),
        public_url=config.public_url,
        event_logger=event_logger,
    )


def create_colorme_server():
    """Create and configure the Color Me Shop MCP server."""
    global _routes_registered
    if not _routes_registered:
        register_routes(mcp, build_handler(config, event_logger=logger))
        _routes_registered = True
    return mcp


def main():
    """Entry point for colorme-server command."""
    # This is just an alias to the main function in main.py
    from main import main as main_func
    main_func()
