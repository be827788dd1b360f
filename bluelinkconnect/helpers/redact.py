#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Redaction of secrets before headers, bodies and URLs are written to the log.
"""

import json
import re
from bluelinkconnect.strings.globals import (
    REDACTED,
    REDACTED_CONTROL_TOKEN,
    NO_BODY,
    EMPTY_BODY,
)

SENSITIVE_HEADERS = ['authorization', 'authorizationccsp', 'stamp', 'pin', 'ccsp-control-token']
CONTROL_TOKEN_HEADER = 'ccsp-control-token'
SENSITIVE_FIELDS = ['pin', 'controlToken']

QUERY_TOKEN = re.compile(r'((?:access|refresh|id)_token=)([^&\s]+)', re.IGNORECASE)
JSON_TOKEN_FIELD = re.compile(r'("(?:access|refresh|control)_(?:token|url)"\s*:\s*")([^"]+)(")', re.IGNORECASE)
MAX_OAUTH_BODY = 512


def redact_headers(headers) -> dict:
    """Return a copy of headers with secrets masked."""
    sanitized = {}
    for name, value in (headers or {}).items():
        lower = name.lower()
        if lower == CONTROL_TOKEN_HEADER:
            sanitized[name] = REDACTED_CONTROL_TOKEN
        elif lower in SENSITIVE_HEADERS:
            sanitized[name] = REDACTED
        else:
            sanitized[name] = value
    return sanitized


def _redact_json(element):
    if isinstance(element, dict):
        return {
            key: REDACTED if key in SENSITIVE_FIELDS else _redact_json(value)
            for key, value in element.items()
        }
    if isinstance(element, list):
        return [_redact_json(child) for child in element]
    return element


def format_body(body) -> str:
    """Body as it may appear in the log. Non JSON bodies are returned as is."""
    if body is None:
        return NO_BODY
    if body == '':
        return EMPTY_BODY
    try:
        parsed = json.loads(body)
    except ValueError:
        return body
    return json.dumps(_redact_json(parsed), separators=(',', ':'))


def redact_url(url: str) -> str:
    """Mask tokens passed as query parameters."""
    if url is None:
        return 'null'
    return QUERY_TOKEN.sub(r'\1' + REDACTED, str(url))


def redact_oauth_body(body) -> str:
    """Mask token fields in an OAuth response and truncate it."""
    if body is None:
        return ''
    trimmed = body.strip()
    if not trimmed:
        return ''
    sanitized = JSON_TOKEN_FIELD.sub(r'\g<1>' + REDACTED + r'\g<3>', trimmed)
    if len(sanitized) > MAX_OAUTH_BODY:
        sanitized = sanitized[:MAX_OAUTH_BODY] + '...'
    return sanitized
