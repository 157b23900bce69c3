"""Tests for the consent dialog and approved-clients cookie."""
import html
import re
from typing import Optional
from urllib.parse import urlencode

import pytest
from cryptography.fernet import Fernet
from starlette.requests import Request

from bridge.approval import (
    COOKIE_NAME,
    ONE_YEAR_IN_SECONDS,
    ApprovalDialog,
    ServerInfo,
    _derive_fernet_key,
)
from bridge.provider import ClientInfo
from bridge.state import decode_payload, encode_payload

SERVER = ServerInfo(name="Color Me Shop MCP Server", description="Shop tools")


def make_request(
    method: str = "GET",
    cookie: Optional[str] = None,
    form: Optional[dict] = None,
) -> Request:
    """Build a request against https://bridge.example.com/authorize."""
    headers = [(b"host", b"bridge.example.com")]
    if cookie is not None:
        headers.append((b"cookie", f"{COOKIE_NAME}={cookie}".encode("latin-1")))
    body = b""
    if form is not None:
        body = urlencode(form).encode("ascii")
        headers.append((b"content-type", b"application/x-www-form-urlencoded"))
        headers.append((b"content-length", str(len(body)).encode("ascii")))

    scope = {
        "type": "http",
        "method": method,
        "scheme": "https",
        "server": ("bridge.example.com", 443),
        "path": "/authorize",
        "query_string": b"client_id=abc123&response_type=code",
        "headers": headers,
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def cookie_value(result) -> str:
    """Extract the cookie value from an ApprovalResult's Set-Cookie header."""
    return result.headers["Set-Cookie"].split(";", 1)[0].split("=", 1)[1]


def approval_form(client_id: str = "abc123") -> dict:
    return {"state": encode_payload({"oauth_req_info": {"client_id": client_id, "scope": ["read"]}})}


class TestApprovedClientsCookie:
    """Test the approved-clients cookie."""

    def test_requires_key(self):
        with pytest.raises(ValueError):
            ApprovalDialog("")

    def test_no_cookie_means_not_approved(self, approval_dialog):
        assert not approval_dialog.client_id_already_approved(make_request(), "abc123")

    @pytest.mark.asyncio
    async def test_approval_round_trip(self, approval_dialog):
        result = await approval_dialog.parse_redirect_approval(make_request("POST", form=approval_form()))

        cookie = cookie_value(result)
        assert approval_dialog.client_id_already_approved(make_request(cookie=cookie), "abc123")
        assert not approval_dialog.client_id_already_approved(make_request(cookie=cookie), "other")

    @pytest.mark.asyncio
    async def test_cookie_attributes(self, approval_dialog):
        result = await approval_dialog.parse_redirect_approval(make_request("POST", form=approval_form()))

        header = result.headers["Set-Cookie"]
        assert header.startswith(f"{COOKIE_NAME}=")
        for attribute in ("HttpOnly", "Secure", "Path=/", "SameSite=Lax", f"Max-Age={ONE_YEAR_IN_SECONDS}"):
            assert attribute in header

    @pytest.mark.asyncio
    async def test_approvals_accumulate(self, approval_dialog):
        first = await approval_dialog.parse_redirect_approval(make_request("POST", form=approval_form("abc123")))
        second = await approval_dialog.parse_redirect_approval(
            make_request("POST", cookie=cookie_value(first), form=approval_form("xyz789"))
        )

        request = make_request(cookie=cookie_value(second))
        assert approval_dialog.client_id_already_approved(request, "abc123")
        assert approval_dialog.client_id_already_approved(request, "xyz789")

    @pytest.mark.asyncio
    async def test_cookie_is_not_readable(self, approval_dialog):
        result = await approval_dialog.parse_redirect_approval(make_request("POST", form=approval_form()))
        assert "abc123" not in result.headers["Set-Cookie"]

    @pytest.mark.asyncio
    async def test_tampered_cookie_is_ignored(self, approval_dialog):
        result = await approval_dialog.parse_redirect_approval(make_request("POST", form=approval_form()))
        cookie = cookie_value(result)
        tampered = cookie[:20] + ("B" if cookie[20] != "B" else "C") + cookie[21:]

        assert not approval_dialog.client_id_already_approved(make_request(cookie=tampered), "abc123")

    @pytest.mark.asyncio
    async def test_cookie_from_other_key_is_ignored(self, approval_dialog):
        other = ApprovalDialog("a-different-key")
        result = await other.parse_redirect_approval(make_request("POST", form=approval_form()))

        assert not approval_dialog.client_id_already_approved(make_request(cookie=cookie_value(result)), "abc123")

    def test_garbage_cookie_is_ignored(self, approval_dialog):
        assert not approval_dialog.client_id_already_approved(make_request(cookie="not-a-token"), "abc123")

    def test_unexpected_payload_shape_is_ignored(self, approval_dialog):
        fernet = Fernet(_derive_fernet_key("test-cookie-encryption-key"))
        cookie = fernet.encrypt(b'{"abc123": true}').decode("ascii")

        assert not approval_dialog.client_id_already_approved(make_request(cookie=cookie), "abc123")


class TestParseRedirectApproval:
    """Test consent form submissions."""

    @pytest.mark.asyncio
    async def test_returns_submitted_state(self, approval_dialog):
        result = await approval_dialog.parse_redirect_approval(make_request("POST", form=approval_form()))
        assert result.state == {"oauth_req_info": {"client_id": "abc123", "scope": ["read"]}}

    @pytest.mark.asyncio
    async def test_rejects_get(self, approval_dialog):
        with pytest.raises(ValueError, match="POST"):
            await approval_dialog.parse_redirect_approval(make_request("GET"))

    @pytest.mark.asyncio
    async def test_rejects_missing_state(self, approval_dialog):
        with pytest.raises(ValueError, match="Missing state"):
            await approval_dialog.parse_redirect_approval(make_request("POST", form={"other": "x"}))

    @pytest.mark.asyncio
    async def test_rejects_undecodable_state(self, approval_dialog):
        with pytest.raises(ValueError, match="decode"):
            await approval_dialog.parse_redirect_approval(make_request("POST", form={"state": "a"}))

    @pytest.mark.asyncio
    async def test_rejects_state_without_client(self, approval_dialog):
        form = {"state": encode_payload({"oauth_req_info": {"scope": ["read"]}})}
        with pytest.raises(ValueError, match="client_id"):
            await approval_dialog.parse_redirect_approval(make_request("POST", form=form))


class TestRenderApprovalDialog:
    """Test the consent page."""

    def test_dialog_carries_state(self, approval_dialog, registered_client):
        state = {"oauth_req_info": {"client_id": "abc123", "scope": ["read"], "state": "s&t"}}
        response = approval_dialog.render_approval_dialog(make_request(), registered_client, SERVER, state)

        assert response.status_code == 200
        assert response.media_type == "text/html"
        page = response.body.decode("utf-8")
        match = re.search(r'name="state" value="([^"]+)"', page)
        assert decode_payload(html.unescape(match.group(1))) == state

    def test_dialog_posts_back_to_current_url(self, approval_dialog, registered_client):
        response = approval_dialog.render_approval_dialog(make_request(), registered_client, SERVER, {})
        page = response.body.decode("utf-8")

        assert 'method="post"' in page
        assert 'action="https://bridge.example.com/authorize?client_id=abc123&amp;response_type=code"' in page

    def test_dialog_shows_client_details(self, approval_dialog, registered_client):
        page = approval_dialog.render_approval_dialog(make_request(), registered_client, SERVER, {}).body.decode()

        assert "Test MCP Client" in page
        assert "https://client.example.com" in page
        assert "Color Me Shop MCP Server" in page
        assert "Cancel" in page
        assert "Approve" in page

    def test_dialog_escapes_client_metadata(self, approval_dialog):
        client = ClientInfo(client_id="evil", client_name="<script>alert(1)</script>")
        page = approval_dialog.render_approval_dialog(make_request(), client, SERVER, {}).body.decode()

        assert "<script>" not in page
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in page

    def test_dialog_for_unknown_client(self, approval_dialog):
        page = approval_dialog.render_approval_dialog(make_request(), None, SERVER, {}).body.decode()
        assert "Unknown MCP Client" in page
