"""
Errors of the authorization bridge.

Each error is terminal for the current authorization attempt. Internal code
branches on the exception type; the plain-text form is produced only when
the error is rendered as the HTTP response.
"""
from typing import Optional

from starlette.responses import PlainTextResponse


class BridgeError(Exception):
    """Base class for errors returned directly as an HTTP response."""

    default_message = "Authorization failed"
    default_status = 500

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        self.status_code = status_code or self.default_status
        super().__init__(self.message)

    def to_response(self) -> PlainTextResponse:
        """Render the error as a plain-text HTTP response."""
        return PlainTextResponse(self.message, status_code=self.status_code)


class InvalidInboundRequest(BridgeError):
    """The inbound authorization request is unusable (e.g. no client ID)."""
    default_message = "Invalid request"
    default_status = 400


class InvalidState(BridgeError):
    """The state token is missing, malformed, or names no client."""
    default_message = "Invalid state"
    default_status = 400


class MissingCode(BridgeError):
    """The upstream callback carries no authorization code."""
    default_message = "Missing authorization code"
    default_status = 400


class UpstreamExchangeError(BridgeError):
    """The token endpoint refused the code or answered with garbage."""
    default_message = "Failed to fetch access token"
    default_status = 502


class UpstreamEnrichmentError(BridgeError):
    """The shop lookup made with the fresh access token failed."""
    default_message = "Failed to fetch shop information"
    default_status = 500

    def __init__(self, upstream_body: str = ""):
        message = self.default_message
        if upstream_body:
            message = f"{message}: {upstream_body}"
        super().__init__(message, self.default_status)
        self.upstream_body = upstream_body


class AuthorizationCompletionError(BridgeError):
    """The authorization server could not record the grant."""
    default_message = "Failed to complete authorization"
    default_status = 500
