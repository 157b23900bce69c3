"""
Consent dialog and approved-clients cookie.

Clients the user already approved are remembered in a cookie scoped to the
user agent. The cookie holds a Fernet token (encrypted and authenticated)
over the JSON list of approved client IDs, so it can be neither read nor
forged without the server's cookie key.
"""
import base64
import hashlib
import html
import json
import logging
from typing import Any, Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field
from starlette.requests import Request
from starlette.responses import HTMLResponse

from bridge.provider import ClientInfo
from bridge.state import MalformedStateError, decode_payload, encode_payload

logger = logging.getLogger(__name__)

COOKIE_NAME = "mcp-approved-clients"
ONE_YEAR_IN_SECONDS = 31536000


class ServerInfo(BaseModel):
    """How this server presents itself in the consent dialog."""
    name: str
    description: Optional[str] = None
    logo: Optional[str] = None


class ApprovalResult(BaseModel):
    """A parsed consent decision: the state the dialog carried, plus cookie headers."""
    state: Dict[str, Any]
    headers: Dict[str, str] = Field(default_factory=dict)


def _derive_fernet_key(cookie_key: str) -> bytes:
    # Derive 32-byte key then base64-url encode for Fernet
    digest = hashlib.sha256(cookie_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class ApprovalDialog:
    """Renders the consent dialog and tracks approved clients in a cookie."""

    def __init__(self, cookie_key: str):
        if not cookie_key:
            raise ValueError("cookie_key is required")
        self._fernet = Fernet(_derive_fernet_key(cookie_key))

    def client_id_already_approved(self, request: Request, client_id: str) -> bool:
        """Whether the request's cookie says the user approved this client before."""
        if not client_id:
            return False
        return client_id in self._approved_clients(request)

    def render_approval_dialog(
        self,
        request: Request,
        client: Optional[ClientInfo],
        server: ServerInfo,
        state: Dict[str, Any],
    ) -> HTMLResponse:
        """Render the consent page; the form posts back to the current URL."""
        encoded_state = encode_payload(state)
        client_name = client.client_name if client and client.client_name else "Unknown MCP Client"

        details = []
        if client:
            details.append(("Client ID", client.client_id))
            if client.client_uri:
                details.append(("Website", client.client_uri))
            if client.policy_uri:
                details.append(("Privacy Policy", client.policy_uri))
            if client.tos_uri:
                details.append(("Terms of Service", client.tos_uri))
            if client.redirect_uris:
                details.append(("Redirect URIs", ", ".join(client.redirect_uris)))
            if client.contacts:
                details.append(("Contact", ", ".join(client.contacts)))

        detail_rows = "\n".join(
            f'<div class="detail"><span class="label">{html.escape(label)}:</span> '
            f'<span class="value">{html.escape(value)}</span></div>'
            for label, value in details
        )
        logo = (
            f'<img class="logo" src="{html.escape(server.logo, quote=True)}" alt="">'
            if server.logo else ""
        )
        description = (
            f'<p class="description">{html.escape(server.description)}</p>'
            if server.description else ""
        )

        page = f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{html.escape(client_name)} | Authorization Request</title>
<style>
body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif; max-width: 600px; margin: 2rem auto; padding: 1rem; color: #333; }}
.card {{ border: 1px solid #ddd; border-radius: 8px; padding: 2rem; }}
.logo {{ width: 48px; height: 48px; }}
.detail {{ margin: 0.5rem 0; }}
.label {{ font-weight: 600; }}
.actions {{ display: flex; justify-content: flex-end; gap: 1rem; margin-top: 2rem; }}
button {{ padding: 0.6rem 1.2rem; border-radius: 4px; border: 1px solid #0070f3; cursor: pointer; }}
.primary {{ background: #0070f3; color: #fff; }}
.secondary {{ background: #fff; color: #0070f3; }}
</style>
</head>
<body>
<div class="card">
{logo}
<h1>{html.escape(server.name)}</h1>
{description}
<h2><strong>{html.escape(client_name)}</strong> is requesting access</h2>
{detail_rows}
<p>This MCP client is requesting to be authorized on {html.escape(server.name)}.
If you approve, you will be redirected to complete authentication.</p>
<form method="post" action="{html.escape(str(request.url), quote=True)}">
<input type="hidden" name="state" value="{html.escape(encoded_state, quote=True)}">
<div class="actions">
<button type="button" class="secondary" onclick="window.history.back()">Cancel</button>
<button type="submit" class="primary">Approve</button>
</div>
</form>
</div>
</body>
</html>"""
        return HTMLResponse(page)

    async def parse_redirect_approval(self, request: Request) -> ApprovalResult:
        """
        Read a submitted consent form and remember the approved client.

        Raises:
            ValueError: wrong method, missing or malformed state, or no client ID
        """
        if request.method != "POST":
            raise ValueError("Invalid request method. Expected POST.")

        form = await request.form()
        encoded_state = form.get("state")
        if not encoded_state or not isinstance(encoded_state, str):
            raise ValueError("Missing state in form data")

        try:
            state = decode_payload(encoded_state)
        except MalformedStateError as e:
            raise ValueError("Could not decode state") from e

        if not isinstance(state, dict):
            raise ValueError("Could not decode state")
        oauth_req_info = state.get("oauth_req_info")
        client_id = oauth_req_info.get("client_id") if isinstance(oauth_req_info, dict) else None
        if not client_id or not isinstance(client_id, str):
            raise ValueError("Could not extract client_id from state")

        approved = self._approved_clients(request)
        if client_id not in approved:
            approved.append(client_id)

        cookie_value = self._fernet.encrypt(json.dumps(approved).encode("utf-8")).decode("ascii")
        headers = {
            "Set-Cookie": (
                f"{COOKIE_NAME}={cookie_value}; HttpOnly; Secure; Path=/; "
                f"SameSite=Lax; Max-Age={ONE_YEAR_IN_SECONDS}"
            )
        }
        return ApprovalResult(state=state, headers=headers)

    def _approved_clients(self, request: Request) -> List[str]:
        cookie_value = request.cookies.get(COOKIE_NAME)
        if not cookie_value:
            return []

        try:
            payload = self._fernet.decrypt(cookie_value.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError):
            logger.warning("Approved-clients cookie failed verification; ignoring it")
            return []

        try:
            approved = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("Approved-clients cookie holds invalid JSON; ignoring it")
            return []

        if not isinstance(approved, list) or not all(isinstance(c, str) for c in approved):
            logger.warning("Approved-clients cookie has an unexpected shape; ignoring it")
            return []
        return approved
