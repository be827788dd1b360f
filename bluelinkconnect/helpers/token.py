#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Helper functions for token handling.
"""

import hashlib
from datetime import datetime, timezone
from jwt import decode
from jwt.exceptions import DecodeError
from bluelinkconnect.strings.globals import SIG_VERIFY, EXPIRY


def decode_token(token) -> dict:
    """Decodes a jwt token. Returns dict with claims, empty if token is opaque."""
    try:
        return decode(token, options={SIG_VERIFY: False})
    except DecodeError:
        return {}


def token_expiry(token):
    """Returns expiry of a JWT token as UTC datetime, None if unknown."""
    exp = decode_token(token).get(EXPIRY, None)
    try:
        return datetime.fromtimestamp(int(exp), tz=timezone.utc)
    except (TypeError, ValueError):
        return None


def hash_pin(pin: str) -> str:
    """SHA-512 hex digest of the PIN, sent in the pin header."""
    return hashlib.sha512(pin.encode('utf-8')).hexdigest()
