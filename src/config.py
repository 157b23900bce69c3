"""Configuration for the Color Me Shop MCP server."""
import json
import os
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from api.errors import ConfigurationError
from api.oauth import UpstreamOAuthConfig
from api.rest_client import RestConfig


class ColorMeConfig(BaseModel):
    """Configuration for Color Me Shop API integration."""

    # Server identification
    server_name: str = Field("colorme-mcp", description="Server name for logging")
    log_level: str = Field("INFO", description="Logging level")

    # Transport settings
    transport: str = Field("sse", description="Transport type: sse, streamable-http")
    host: str = Field("127.0.0.1", description="Host for network transports")
    port: int = Field(8000, description="Port for network transports")
    public_url: Optional[str] = Field(
        None, description="Externally visible base URL, used to build the OAuth callback URL"
    )

    # Upstream OAuth credentials
    client_id: str = Field(description="Color Me Shop OAuth client ID")
    client_secret: Optional[str] = Field(None, description="Color Me Shop OAuth client secret")

    # Key for the approved-clients cookie
    cookie_encryption_key: Optional[str] = Field(
        None, description="Symmetric key protecting the approved-clients cookie"
    )

    # Upstream endpoints
    authorize_url: str = Field(
        "https://api.shop-pro.jp/oauth/authorize", description="Upstream authorization endpoint"
    )
    token_url: str = Field(
        "https://api.shop-pro.jp/oauth/token", description="Upstream token endpoint"
    )
    api_base_url: str = Field(
        "https://api.shop-pro.jp/v1", description="Color Me Shop REST API base URL"
    )

    # MCP clients allowed to authorize: client_id -> redirect URIs
    mcp_clients: Dict[str, List[str]] = Field(
        default_factory=dict, description="Registered MCP clients and their redirect URIs"
    )

    @classmethod
    def from_env(cls) -> "ColorMeConfig":
        """Create config from environment variables."""
        return cls(
            client_id=os.environ.get("COLORME_CLIENT_ID", ""),
            client_secret=os.environ.get("COLORME_CLIENT_SECRET"),
            cookie_encryption_key=os.environ.get("COOKIE_ENCRYPTION_KEY"),
            public_url=os.environ.get("COLORME_PUBLIC_URL"),
            log_level=os.environ.get("COLORME_LOG_LEVEL", "INFO"),
            transport=os.environ.get("COLORME_TRANSPORT", "sse"),
            host=os.environ.get("COLORME_HOST", "127.0.0.1"),
            port=int(os.environ.get("COLORME_PORT", "8000")),
            authorize_url=os.environ.get(
                "COLORME_AUTHORIZE_URL", "https://api.shop-pro.jp/oauth/authorize"
            ),
            token_url=os.environ.get("COLORME_TOKEN_URL", "https://api.shop-pro.jp/oauth/token"),
            api_base_url=os.environ.get("COLORME_API_BASE_URL", "https://api.shop-pro.jp/v1"),
            mcp_clients=json.loads(os.environ.get("COLORME_MCP_CLIENTS") or "{}"),
        )

    def upstream_oauth_config(self) -> UpstreamOAuthConfig:
        """Build the upstream OAuth configuration."""
        return UpstreamOAuthConfig(
            client_id=self.client_id,
            client_secret=self.client_secret or "",
            authorize_url=self.authorize_url,
            token_url=self.token_url,
        )

    def rest_config(self) -> RestConfig:
        """Build the REST client configuration."""
        return RestConfig(base_url=self.api_base_url)

    def validate_credentials(self) -> None:
        """Validate that required credentials are present."""
        missing = []
        if not self.client_id:
            missing.append("COLORME_CLIENT_ID")
        if not self.client_secret:
            missing.append("COLORME_CLIENT_SECRET")
        if not self.cookie_encryption_key:
            missing.append("COOKIE_ENCRYPTION_KEY")

        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}.\n"
                "To get Color Me Shop OAuth credentials:\n"
                "1. Go to https://developer.shop-pro.jp/ and sign in\n"
                "2. Register an application with the redirect URI <server>/callback\n"
                "3. Copy the client ID and client secret into your .env file\n"
                "4. Set COOKIE_ENCRYPTION_KEY to a long random string\n"
                "WARNING: Keep the client secret and cookie key private!",
                missing_fields=missing,
            )

    def check_credential_status(self) -> Dict[str, Any]:
        """Check credential status and provide helpful guidance."""
        status = {
            "client_id": bool(self.client_id),
            "client_secret": bool(self.client_secret),
            "cookie_encryption_key": bool(self.cookie_encryption_key),
            "registered_clients": len(self.mcp_clients),
            "ready_for_authorization": bool(
                self.client_id and self.client_secret and self.cookie_encryption_key
            ),
        }

        messages = []

        if not self.client_id:
            messages.append("COLORME_CLIENT_ID missing - Required for the upstream redirect")
        else:
            messages.append("COLORME_CLIENT_ID configured")

        if not self.client_secret:
            messages.append("COLORME_CLIENT_SECRET missing - Required for the code exchange")
        else:
            messages.append("COLORME_CLIENT_SECRET configured")

        if not self.cookie_encryption_key:
            messages.append("COOKIE_ENCRYPTION_KEY missing - Required for the consent cookie")
        else:
            messages.append("COOKIE_ENCRYPTION_KEY configured")

        if not self.mcp_clients:
            messages.append("No MCP clients registered - set COLORME_MCP_CLIENTS")

        if status["ready_for_authorization"]:
            messages.append("Ready for: OAuth authorization bridge")
        else:
            messages.append("Get credentials at: https://developer.shop-pro.jp/")

        status["messages"] = messages
        return status
