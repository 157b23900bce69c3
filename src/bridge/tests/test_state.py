"""Tests for the state token codec."""
import base64
import json

import pytest

from bridge.state import MalformedStateError, decode_payload, decode_state, encode_payload, encode_state


def _raw_token(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


class TestStateCodec:
    """Test encoding and decoding of authorization request records."""

    def test_round_trip_preserves_record(self):
        record = {
            "client_id": "abc123",
            "redirect_uri": "https://client.example.com/cb?x=1&y=2",
            "scope": ["read", "write"],
            "state": "client-state",
            "code_challenge": None,
            "extra": {"nested": [1, 2.5, True, "ショップ"]},
        }
        assert decode_state(encode_state(record)) == record

    def test_token_is_url_safe(self):
        token = encode_state({"client_id": "abc123", "state": "???>>>", "name": "ショップ"})
        assert "=" not in token
        assert "+" not in token
        assert "/" not in token

    def test_encoding_is_deterministic(self):
        record = {"client_id": "abc123", "scope": ["read"]}
        assert encode_state(record) == encode_state(dict(record))

    def test_payload_accepts_any_json_value(self):
        for value in ([1, "two"], "text", 3, None, {"a": {}}):
            assert decode_payload(encode_payload(value)) == value

    @pytest.mark.parametrize("token", ["", "a", "ü", "%%%%", "eyJj!!**"])
    def test_undecodable_tokens(self, token):
        with pytest.raises(MalformedStateError):
            decode_state(token)

    def test_characters_outside_the_alphabet(self):
        token = encode_state({"client_id": "abc123"})
        with pytest.raises(MalformedStateError):
            decode_state(token[:4] + "!!**" + token[4:])

    def test_standard_alphabet_is_rejected(self):
        token = _raw_token(json.dumps({"client_id": "abc123"}).encode())
        with pytest.raises(MalformedStateError):
            decode_state(token[:4] + "+/" + token[6:])

    def test_lone_surrogate_round_trips(self):
        record = {"client_id": "abc123", "state": "\ud800"}
        token = encode_state(record)
        assert token.isascii()
        assert decode_state(token) == record

    def test_not_json(self):
        with pytest.raises(MalformedStateError):
            decode_state(_raw_token(b"not json at all"))

    def test_not_utf8(self):
        with pytest.raises(MalformedStateError):
            decode_state(_raw_token(b"\xff\xfe\xfd"))

    def test_record_must_be_an_object(self):
        with pytest.raises(MalformedStateError):
            decode_state(_raw_token(json.dumps(["abc123"]).encode()))

    @pytest.mark.parametrize("record", [
        {"redirect_uri": "https://client.example.com/cb"},
        {"client_id": ""},
        {"client_id": 42},
    ])
    def test_record_needs_client_id(self, record):
        with pytest.raises(MalformedStateError):
            decode_state(encode_payload(record))

    def test_malformed_state_is_value_error(self):
        assert issubclass(MalformedStateError, ValueError)
