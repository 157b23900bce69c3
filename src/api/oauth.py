"""
Color Me Shop OAuth 2.0 client for the authorization-code flow.

Builds the upstream authorization URL and exchanges the one-time code for an
access token. Each exchange is a single request: there is no retry and no
token caching here, the issued token travels inside the MCP session props.
"""
import asyncio
import json
from typing import Optional
from urllib.parse import urlencode
import aiohttp
from pydantic import BaseModel, Field, model_validator
import logging

from bridge.errors import BridgeError, MissingCode, UpstreamExchangeError

logger = logging.getLogger(__name__)


class UpstreamOAuthConfig(BaseModel):
    """Configuration for the Color Me Shop OAuth provider."""
    client_id: str = Field(..., description="Color Me Shop OAuth client ID")
    client_secret: str = Field(..., description="Color Me Shop OAuth client secret")
    authorize_url: str = Field(
        default="https://api.shop-pro.jp/oauth/authorize", description="Authorization endpoint"
    )
    token_url: str = Field(
        default="https://api.shop-pro.jp/oauth/token", description="Token endpoint"
    )


class TokenExchangeResult(BaseModel):
    """Outcome of a code exchange: exactly one of ``access_token`` or ``error``."""
    model_config = {"arbitrary_types_allowed": True}

    access_token: Optional[str] = None
    error: Optional[BridgeError] = None

    @model_validator(mode="after")
    def check_exclusive(self):
        if (self.access_token is None) == (self.error is None):
            raise ValueError("exactly one of access_token or error must be set")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None


class ColorMeScopes:
    """Color Me Shop OAuth scopes."""

    READ_PRODUCTS = "read_products"
    WRITE_PRODUCTS = "write_products"
    READ_SALES = "read_sales"
    WRITE_SALES = "write_sales"
    READ_SHOP_COUPONS = "read_shop_coupons"

    # Requested on every upstream redirect, whatever the MCP client asked for
    BRIDGE_SCOPES = " ".join([
        READ_PRODUCTS,
        WRITE_PRODUCTS,
        READ_SALES,
        WRITE_SALES,
        READ_SHOP_COUPONS,
    ])

    @classmethod
    def get_scope_description(cls, scope: str) -> str:
        """Get human-readable description of OAuth scope."""
        scope_descriptions = {
            cls.READ_PRODUCTS: "View products, stock, categories and groups",
            cls.WRITE_PRODUCTS: "Create and update products and stock",
            cls.READ_SALES: "View orders, customers and sales statistics",
            cls.WRITE_SALES: "Create, update and cancel orders and customers",
            cls.READ_SHOP_COUPONS: "View shop coupons",
        }
        return scope_descriptions.get(scope, "Unknown scope")

    @classmethod
    def validate_scope(cls, scope: str) -> bool:
        """Validate that every space-separated scope is a known one."""
        known_scopes = [
            cls.READ_PRODUCTS, cls.WRITE_PRODUCTS,
            cls.READ_SALES, cls.WRITE_SALES,
            cls.READ_SHOP_COUPONS,
        ]
        scopes = scope.split()
        return bool(scopes) and all(s in known_scopes for s in scopes)


def build_authorize_url(
    config: UpstreamOAuthConfig,
    redirect_uri: str,
    state: str,
    scope: str = ColorMeScopes.BRIDGE_SCOPES,
) -> str:
    """
    Build the upstream authorization URL.

    Args:
        config: Upstream OAuth configuration (provides the bridge's client ID)
        redirect_uri: Callback URL; must match the one used for the code exchange
        state: Opaque state token carried through the round trip
        scope: Space-separated upstream scopes

    Returns:
        Absolute URL to redirect the user agent to
    """
    if not ColorMeScopes.validate_scope(scope):
        logger.warning(f"Using unrecognized Color Me Shop scope: {scope}")

    params = {
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        "state": state,
    }
    return f"{config.authorize_url}?{urlencode(params)}"


async def exchange_code_for_token(
    config: UpstreamOAuthConfig,
    code: Optional[str],
    redirect_uri: str,
) -> TokenExchangeResult:
    """
    Exchange an authorization code for an access token.

    Args:
        config: Upstream OAuth configuration
        code: Authorization code from the callback
        redirect_uri: The exact callback URL sent with the authorization request

    Returns:
        TokenExchangeResult holding either the access token or a ready-to-render error
    """
    if not code:
        return TokenExchangeResult(error=MissingCode())

    data = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": redirect_uri,
    }
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/x-www-form-urlencoded",
    }

    logger.info("Exchanging authorization code for access token")
    logger.debug(f"Using redirect URI: {redirect_uri}")

    async with aiohttp.ClientSession() as session:
        try:
            async with session.post(config.token_url, headers=headers, data=data) as response:
                response_text = await response.text()

                if not 200 <= response.status < 300:
                    error_msg = _parse_oauth_error(response.status, response_text)
                    logger.error(f"Token exchange failed: {response.status} - {error_msg}")
                    return TokenExchangeResult(
                        error=UpstreamExchangeError(
                            f"Failed to fetch access token: {error_msg}",
                            status_code=response.status,
                        )
                    )
        except aiohttp.ClientError as e:
            logger.error(f"Token exchange network error: {e}")
            return TokenExchangeResult(
                error=UpstreamExchangeError(f"Token exchange network error: {e}")
            )
        except asyncio.TimeoutError:
            logger.error("Token exchange timed out")
            return TokenExchangeResult(error=UpstreamExchangeError("Token exchange timed out"))

    try:
        token_data = json.loads(response_text)
    except ValueError:
        logger.error("Token endpoint returned a body that is not JSON")
        return TokenExchangeResult(
            error=UpstreamExchangeError("Malformed token response from Color Me Shop")
        )

    access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
    if not access_token or not isinstance(access_token, str):
        logger.error("Token response missing access_token")
        return TokenExchangeResult(
            error=UpstreamExchangeError("Token response missing access_token")
        )

    logger.info("Access token obtained successfully")
    return TokenExchangeResult(access_token=access_token)


def _parse_oauth_error(status_code: int, response_text: str) -> str:
    """Turn an OAuth error body into a readable message."""
    try:
        error_data = json.loads(response_text)
    except ValueError:
        error_data = None

    if isinstance(error_data, dict):
        error_code = error_data.get("error", "")
        error_description = error_data.get("error_description", "")

        if error_code == "invalid_client":
            return "Invalid client credentials (check COLORME_CLIENT_ID and COLORME_CLIENT_SECRET)"
        elif error_code == "invalid_grant":
            message = "Authorization code is invalid or expired"
            return f"{message}: {error_description}" if error_description else message
        elif error_code and error_description:
            return f"{error_code}: {error_description}"
        elif error_code:
            return error_code

    return response_text or f"HTTP {status_code} error"
