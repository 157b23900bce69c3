"""
Authorization-server collaborator.

The bridge talks to the MCP authorization server only through the
``AuthorizationServer`` protocol. ``InMemoryAuthorizationServer`` is a
single-process implementation: it validates inbound requests against the
registered clients and, on completion, hands back a one-time code on the
client's redirect URI. A code expires after ``GRANT_TTL`` and is redeemed
once with ``redeem_grant``. Token issuance and revocation live elsewhere.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, Field
from starlette.requests import Request

logger = logging.getLogger(__name__)

AuthRequest = Dict[str, Any]

GRANT_TTL = timedelta(minutes=10)


class InvalidAuthRequestError(ValueError):
    """The inbound authorization request is not acceptable."""


class ClientInfo(BaseModel):
    """Metadata of a registered MCP client."""
    client_id: str = Field(..., min_length=1)
    redirect_uris: List[str] = Field(default_factory=list)
    client_name: Optional[str] = None
    client_uri: Optional[str] = None
    logo_uri: Optional[str] = None
    policy_uri: Optional[str] = None
    tos_uri: Optional[str] = None
    contacts: List[str] = Field(default_factory=list)


class CompleteAuthorizationOptions(BaseModel):
    """Everything the authorization server needs to finish a grant."""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    props: Dict[str, Any]
    request: AuthRequest
    scope: List[str] = Field(default_factory=list)
    user_id: str


class CompletionResult(BaseModel):
    """Where to send the user agent once the grant is recorded."""
    redirect_to: str


class AuthorizationServer(Protocol):
    """Operations the bridge consumes from the MCP authorization server."""

    async def parse_auth_request(self, request: Request) -> AuthRequest:
        ...

    async def lookup_client(self, client_id: str) -> Optional[ClientInfo]:
        ...

    async def complete_authorization(self, options: CompleteAuthorizationOptions) -> CompletionResult:
        ...


class Grant(BaseModel):
    """A completed authorization waiting to be redeemed at the token endpoint."""
    client_id: str
    user_id: str
    scope: List[str]
    props: Dict[str, Any]
    metadata: Dict[str, Any]
    redirect_uri: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryAuthorizationServer:
    """Authorization server keeping clients and pending grants in process memory."""

    def __init__(self, clients: Optional[List[ClientInfo]] = None):
        self._clients: Dict[str, ClientInfo] = {}
        self.grants: Dict[str, Grant] = {}
        for client in clients or []:
            self.register_client(client)

    def register_client(self, client: ClientInfo) -> None:
        self._clients[client.client_id] = client

    async def parse_auth_request(self, request: Request) -> AuthRequest:
        """
        Read an authorization request from the query string.

        Returns an empty ``client_id`` when the request names no client, so the
        caller decides how to reject it.

        Raises:
            InvalidAuthRequestError: unsupported response type, unknown client
                or a redirect URI the client never registered
        """
        params = request.query_params
        response_type = params.get("response_type", "code")
        client_id = params.get("client_id", "")
        redirect_uri = params.get("redirect_uri")

        if response_type != "code":
            raise InvalidAuthRequestError(f"Unsupported response_type: {response_type}")

        if client_id:
            client = self._clients.get(client_id)
            if client is None:
                raise InvalidAuthRequestError(f"Unknown client: {client_id}")
            if redirect_uri is None and len(client.redirect_uris) == 1:
                redirect_uri = client.redirect_uris[0]
            if redirect_uri not in client.redirect_uris:
                raise InvalidAuthRequestError("Invalid redirect_uri for client")

        return {
            "response_type": response_type,
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": params.get("scope", "").split(),
            "state": params.get("state", ""),
            "code_challenge": params.get("code_challenge"),
            "code_challenge_method": params.get("code_challenge_method"),
        }

    async def lookup_client(self, client_id: str) -> Optional[ClientInfo]:
        return self._clients.get(client_id)

    def _check_redirect(self, request: AuthRequest) -> str:
        client_id = request.get("client_id")
        client = self._clients.get(client_id) if isinstance(client_id, str) else None
        if client is None:
            raise InvalidAuthRequestError(f"Unknown client: {client_id}")
        redirect_uri = request.get("redirect_uri")
        if not redirect_uri:
            raise InvalidAuthRequestError("Authorization request has no redirect_uri")
        if redirect_uri not in client.redirect_uris:
            raise InvalidAuthRequestError("Invalid redirect_uri for client")
        return redirect_uri

    async def complete_authorization(self, options: CompleteAuthorizationOptions) -> CompletionResult:
        """
        Record the grant under a fresh code and build the client redirect.

        The request is checked against the registered clients again: it comes
        back from the user agent and may have been altered on the way.

        Raises:
            InvalidAuthRequestError: unknown client, or a missing or
                unregistered redirect URI
        """
        request = options.request
        redirect_uri = self._check_redirect(request)
        self._evict_expired()

        code = secrets.token_urlsafe(32)
        self.grants[code] = Grant(
            client_id=request["client_id"],
            user_id=options.user_id,
            scope=options.scope,
            props=options.props,
            metadata=options.metadata,
            redirect_uri=redirect_uri,
            code_challenge=request.get("code_challenge"),
            code_challenge_method=request.get("code_challenge_method"),
        )
        logger.info(f"Authorization completed for client {request['client_id']} (user {options.user_id})")

        query = {"code": code}
        if request.get("state"):
            query["state"] = request["state"]
        return CompletionResult(redirect_to=_append_query(redirect_uri, query))

    def redeem_grant(self, code: str, client_id: str) -> Grant:
        """
        Hand out a grant once; the code is spent whether or not it is valid.

        Raises:
            InvalidAuthRequestError: unknown or expired code, or a code issued
                to another client
        """
        grant = self.grants.pop(code, None)
        if grant is None or self._expired(grant):
            raise InvalidAuthRequestError("Unknown or expired authorization code")
        if grant.client_id != client_id:
            raise InvalidAuthRequestError("Authorization code was issued to another client")
        return grant

    def _expired(self, grant: Grant, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) - grant.created_at > GRANT_TTL

    def _evict_expired(self) -> None:
        now = datetime.now(timezone.utc)
        for code in [c for c, g in self.grants.items() if self._expired(g, now)]:
            del self.grants[code]


def _append_query(url: str, params: Dict[str, str]) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))
