"""Unit Tests for log redaction and token helpers"""
from datetime import datetime, timezone
import hashlib
import json

from bluelinkconnect.helpers.redact import format_body, redact_headers, redact_oauth_body, redact_url
from bluelinkconnect.helpers.token import decode_token, hash_pin, token_expiry


def test_redact_headers():
    headers = redact_headers({
        "Authorization": "Bearer secret",
        "ccsp-control-token": "control-1",
        "pin": "digest",
        "Stamp": "stamp",
        "ccsp-device-id": "DEVICE-1",
    })
    assert headers["Authorization"] == "***REDACTED***"
    assert headers["ccsp-control-token"] == "Token [****REDACTED****]"
    assert headers["pin"] == "***REDACTED***"
    assert headers["Stamp"] == "***REDACTED***"
    assert headers["ccsp-device-id"] == "DEVICE-1"


def test_format_body():
    assert format_body(None) == "<none>"
    assert format_body("") == "<empty>"
    assert format_body("plain text") == "plain text"
    body = json.loads(format_body('{"pin": "1234", "nested": [{"controlToken": "c"}], "deviceId": "D"}'))
    assert body == {"pin": "***REDACTED***", "nested": [{"controlToken": "***REDACTED***"}], "deviceId": "D"}


def test_redact_url_and_oauth_body():
    assert redact_url("https://x/cb?code=1&access_token=abc") == "https://x/cb?code=1&access_token=***REDACTED***"
    assert redact_url(None) == "null"
    redacted = redact_oauth_body('{"access_token": "abc", "token_type": "Bearer"}')
    assert "abc" not in redacted
    assert '"token_type": "Bearer"' in redacted
    assert redact_oauth_body("x" * 600).endswith("...")


def test_token_helpers(jwt_access_token: str):
    assert decode_token("opaque") == {}
    assert token_expiry("opaque") is None
    assert token_expiry(jwt_access_token) > datetime.now(timezone.utc)
    assert hash_pin("1234") == hashlib.sha512(b"1234").hexdigest()
