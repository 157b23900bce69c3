"""
State token codec.

The original MCP authorization request is carried through the upstream
redirect as an opaque, URL-safe token: compact JSON, UTF-8, base64url without
padding. Nothing is stored server-side between the two hops.
"""
import base64
import binascii
import json
from typing import Any, Dict

CLIENT_ID_FIELD = "client_id"


class MalformedStateError(ValueError):
    """The state token cannot be turned back into an authorization request."""


def _base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _base64url_decode(s: str) -> bytes:
    if "+" in s or "/" in s:
        raise binascii.Error("standard base64 alphabet in a base64url token")
    pad = -len(s) % 4
    if pad:
        s += "=" * pad
    return base64.b64decode(s.encode("ascii"), altchars=b"-_", validate=True)


def encode_payload(payload: Any) -> str:
    """Encode any JSON-representable value as a URL-safe token."""
    raw = json.dumps(payload, separators=(",", ":"))
    return _base64url_encode(raw.encode("utf-8"))


def decode_payload(token: str) -> Any:
    """Inverse of :func:`encode_payload`.

    Raises:
        MalformedStateError: token is empty, not base64url, or not UTF-8 JSON
    """
    if not token:
        raise MalformedStateError("state is missing")
    try:
        raw = _base64url_decode(token)
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise MalformedStateError("state is not a valid token") from e


def encode_state(record: Dict[str, Any]) -> str:
    """Encode an authorization request record into a state token."""
    return encode_payload(record)


def decode_state(token: str) -> Dict[str, Any]:
    """Decode a state token back into the authorization request record.

    Raises:
        MalformedStateError: the token is invalid or the record has no client ID
    """
    record = decode_payload(token)
    if not isinstance(record, dict):
        raise MalformedStateError("state does not hold an authorization request")
    client_id = record.get(CLIENT_ID_FIELD)
    if not client_id or not isinstance(client_id, str):
        raise MalformedStateError("state has no client_id")
    return record
