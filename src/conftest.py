"""Shared fixtures for the Color Me Shop MCP server tests."""
import pytest

from api.oauth import UpstreamOAuthConfig
from bridge.approval import ApprovalDialog
from bridge.provider import ClientInfo, InMemoryAuthorizationServer

CLIENT_ID = "abc123"
CLIENT_REDIRECT_URI = "https://client.example.com/oauth/callback"
COOKIE_KEY = "test-cookie-encryption-key"


@pytest.fixture
def oauth_config():
    """Upstream OAuth configuration for testing."""
    return UpstreamOAuthConfig(
        client_id="colorme_client_id",
        client_secret="colorme_client_secret",
    )


@pytest.fixture
def registered_client():
    """An MCP client known to the authorization server."""
    return ClientInfo(
        client_id=CLIENT_ID,
        redirect_uris=[CLIENT_REDIRECT_URI],
        client_name="Test MCP Client",
        client_uri="https://client.example.com",
    )


@pytest.fixture
def auth_server(registered_client):
    """In-memory authorization server with one registered client."""
    return InMemoryAuthorizationServer([registered_client])


@pytest.fixture
def approval_dialog():
    """Consent dialog keyed with the test cookie key."""
    return ApprovalDialog(COOKIE_KEY)


@pytest.fixture
def shop_payload():
    """Body of a successful GET /shop.json."""
    return {
        "shop": {
            "id": "PA01234567",
            "name": "Test Shop",
            "url": "https://test-shop.shop-pro.jp",
            "login_id": "testshop",
        }
    }
