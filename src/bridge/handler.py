"""
OAuth bridge between MCP clients and Color Me Shop.

    GET  /authorize  consent gate: skip to Color Me Shop or render the dialog
    POST /authorize  consent decision: remember the client, go to Color Me Shop
    GET  /callback   exchange the code, look up the shop, complete the MCP grant

The MCP authorization request crosses the upstream redirect inside the
``state`` parameter only; the handler keeps nothing in memory between hops.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.routing import Route

from api.errors import ColorMeApiError, ColorMeApiException
from api.models import SessionProps, ShopAccount, ShopResponse
from api.oauth import (
    ColorMeScopes,
    UpstreamOAuthConfig,
    build_authorize_url,
    exchange_code_for_token,
)
from api.rest_client import ColorMeRestClient, RestConfig
from bridge.approval import ApprovalDialog, ServerInfo
from bridge.errors import (
    AuthorizationCompletionError,
    BridgeError,
    InvalidInboundRequest,
    InvalidState,
    UpstreamEnrichmentError,
)
from bridge.provider import (
    AuthorizationServer,
    AuthRequest,
    CompleteAuthorizationOptions,
    InvalidAuthRequestError,
)
from bridge.state import MalformedStateError, decode_state, encode_state
from logging_config import MCPLogger

logger = logging.getLogger(__name__)

DEFAULT_SERVER_INFO = ServerInfo(
    name="Color Me Shop MCP Server",
    description="This MCP server accesses the Color Me Shop API on behalf of your shop.",
)


def normalize_scope(scope: Union[str, List[str], None]) -> List[str]:
    """Turn a space-delimited string or a list of scopes into an ordered list."""
    if isinstance(scope, (list, tuple)):
        scope = " ".join(str(s) for s in scope)
    return [s for s in (scope or "").split() if s]


class ColorMeHandler:
    """HTTP endpoints of the OAuth bridge."""

    def __init__(
        self,
        auth_server: AuthorizationServer,
        approval_dialog: ApprovalDialog,
        oauth_config: UpstreamOAuthConfig,
        rest_config: Optional[RestConfig] = None,
        rest_client_factory: Callable[..., ColorMeRestClient] = ColorMeRestClient,
        public_url: Optional[str] = None,
        server_info: ServerInfo = DEFAULT_SERVER_INFO,
        event_logger: Optional[MCPLogger] = None,
    ):
        self.auth_server = auth_server
        self.approval_dialog = approval_dialog
        self.oauth_config = oauth_config
        self.rest_config = rest_config or RestConfig()
        self.rest_client_factory = rest_client_factory
        self.public_url = public_url.rstrip("/") if public_url else None
        self.server_info = server_info
        self.event_logger = event_logger

    def routes(self) -> List[Route]:
        return [
            Route("/authorize", self.authorize, methods=["GET"]),
            Route("/authorize", self.approve, methods=["POST"]),
            Route("/callback", self.callback, methods=["GET"]),
        ]

    async def authorize(self, request: Request) -> Response:
        """GET /authorize: bypass or render the consent dialog."""
        try:
            auth_request = await self.auth_server.parse_auth_request(request)
        except InvalidAuthRequestError as e:
            logger.warning(f"Rejected authorization request: {e}")
            return InvalidInboundRequest().to_response()

        client_id = auth_request.get("client_id")
        if not client_id:
            return InvalidInboundRequest().to_response()

        if self.approval_dialog.client_id_already_approved(request, client_id):
            logger.info(f"Client {client_id} already approved; skipping consent dialog")
            self._auth_event("consent_skipped", client_id=client_id)
            return self.redirect_to_colorme(request, auth_request)

        client = await self.auth_server.lookup_client(client_id)
        return self.approval_dialog.render_approval_dialog(
            request,
            client=client,
            server=self.server_info,
            state={"oauth_req_info": auth_request},
        )

    async def approve(self, request: Request) -> Response:
        """POST /authorize: the user approved the client in the dialog."""
        try:
            result = await self.approval_dialog.parse_redirect_approval(request)
        except ValueError as e:
            logger.warning(f"Rejected consent submission: {e}")
            self._security_event("consent_rejected", reason=str(e))
            return InvalidInboundRequest().to_response()

        auth_request = result.state.get("oauth_req_info")
        if not isinstance(auth_request, dict) or not auth_request.get("client_id"):
            return InvalidInboundRequest().to_response()
        if not await self._is_registered(auth_request):
            logger.warning(f"Consent submitted for unregistered client or redirect: {auth_request['client_id']}")
            self._security_event("unregistered_redirect", client_id=auth_request["client_id"])
            return InvalidInboundRequest().to_response()

        logger.info(f"Client {auth_request['client_id']} approved by user")
        self._auth_event("client_approved", client_id=auth_request["client_id"])
        return self.redirect_to_colorme(request, auth_request, result.headers)

    def redirect_to_colorme(
        self,
        request: Request,
        auth_request: AuthRequest,
        headers: Optional[Dict[str, str]] = None,
    ) -> RedirectResponse:
        """Send the user agent to the Color Me Shop authorization page."""
        location = build_authorize_url(
            self.oauth_config,
            redirect_uri=self.callback_url(request),
            state=encode_state(auth_request),
            scope=ColorMeScopes.BRIDGE_SCOPES,
        )
        return RedirectResponse(location, status_code=302, headers=headers)

    async def callback(self, request: Request) -> Response:
        """GET /callback: finish the upstream flow and complete the MCP grant."""
        try:
            return await self._handle_callback(request)
        except BridgeError as e:
            logger.error(f"Authorization failed ({e.status_code}): {e.message}")
            return e.to_response()

    async def _handle_callback(self, request: Request) -> Response:
        try:
            auth_request = decode_state(request.query_params.get("state", ""))
        except MalformedStateError as e:
            self._security_event("invalid_state", reason=str(e))
            raise InvalidState() from e
        if not await self._is_registered(auth_request):
            self._security_event("unregistered_redirect", client_id=auth_request["client_id"])
            raise InvalidState()

        # A missing code is reported by the exchange without a network call
        result = await exchange_code_for_token(
            self.oauth_config,
            code=request.query_params.get("code"),
            redirect_uri=self.callback_url(request),
        )
        if not result.ok:
            raise result.error

        shop = await self.fetch_shop_account(result.access_token)
        return await self.complete(auth_request, shop, result.access_token)

    async def fetch_shop_account(self, access_token: str) -> ShopAccount:
        """Read the shop the token belongs to; any failure is terminal."""
        try:
            async with self.rest_client_factory(access_token, self.rest_config) as client:
                data = await client.get("/shop.json")
        except ColorMeApiError as e:
            logger.error(f"Shop lookup failed: {e.to_dict()}")
            raise UpstreamEnrichmentError(e.response_text) from e
        except (ColorMeApiException, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamEnrichmentError(str(e)) from e

        try:
            return ShopResponse.model_validate(data).shop
        except ValidationError as e:
            raise UpstreamEnrichmentError(f"unexpected response {data!r}") from e

    async def complete(
        self,
        auth_request: AuthRequest,
        shop: ShopAccount,
        access_token: str,
    ) -> RedirectResponse:
        """Hand the enriched grant to the authorization server and redirect back."""
        scopes = normalize_scope(auth_request.get("scope"))
        props = SessionProps(
            shop_id=shop.id,
            shop_name=shop.name,
            shop_url=shop.url,
            access_token=access_token,
            scopes=scopes,
        )

        try:
            completion = await self.auth_server.complete_authorization(
                CompleteAuthorizationOptions(
                    metadata={"label": shop.name},
                    props=props.model_dump(),
                    request=auth_request,
                    scope=scopes,
                    user_id=shop.id,
                )
            )
        except InvalidAuthRequestError as e:
            raise AuthorizationCompletionError(f"Failed to complete authorization: {e}") from e
        self._auth_event(
            "authorization_completed",
            client_id=auth_request.get("client_id"),
            shop_id=shop.id,
        )
        return RedirectResponse(completion.redirect_to, status_code=302)

    async def _is_registered(self, auth_request: AuthRequest) -> bool:
        """Whether the record names a known client and one of its redirect URIs."""
        client = await self.auth_server.lookup_client(auth_request["client_id"])
        return client is not None and auth_request.get("redirect_uri") in client.redirect_uris

    def _auth_event(self, event_type: str, **kwargs) -> None:
        if self.event_logger is not None:
            self.event_logger.auth_event(event_type, **kwargs)

    def _security_event(self, event_type: str, **kwargs) -> None:
        if self.event_logger is not None:
            self.event_logger.security_event(event_type, **kwargs)

    def callback_url(self, request: Request) -> str:
        """The upstream redirect URI; identical for the redirect and the exchange."""
        if self.public_url:
            return f"{self.public_url}/callback"
        return str(request.url.replace(path="/callback", query="", fragment=""))


def register_routes(mcp: Any, handler: ColorMeHandler) -> None:
    """Mount the bridge endpoints on a FastMCP server's HTTP app."""
    for route in handler.routes():
        mcp.custom_route(route.path, methods=sorted(route.methods - {"HEAD"}))(route.endpoint)
