"""Shared fixtures for BlueLink tests"""
from datetime import datetime, timedelta, timezone
import os

from aioresponses import aioresponses
from jwt import encode
import pytest

from bluelinkconnect.api.endpoints import Endpoints
from bluelinkconnect.api.stamp import StampProvider
from bluelinkconnect.api.token import TokenManager

BASE_URL = "https://api.example.com/api/v1/spa"
TOKEN_URL = "https://auth.example.com/token"
STAMP_URL = "https://stamps.example.com/hyundai.v2.json"


@pytest.fixture
def response_mock() -> aioresponses:
    """Returns a clean aioresponses object to mock responses in tests."""
    with aioresponses() as mock:
        yield mock


@pytest.fixture
def stamp_cache(tmp_path) -> str:
    """Returns a cache directory holding a ready stamp file."""
    with open(os.path.join(tmp_path, "hyundai.v2.json"), "w") as fd_stamp:
        fd_stamp.write('"STAMP-1"')
    return str(tmp_path)


@pytest.fixture
def jwt_access_token() -> str:
    """Returns an access token JWT"""
    iat = datetime.now(tz=timezone.utc)
    payload = {
        "iat": iat,
        "exp": iat + timedelta(minutes=30),
        "sub": "1b4fdf4f-9c3c-4e4c-8a8d-6a4a0c2f7d11",
        "jti": "5bd2a8f6-2d0e-4a6e-9f83-3f6b2c0c0a10",
    }
    return encode(payload, "secret", algorithm="HS256")


@pytest.fixture
def endpoints() -> Endpoints:
    return Endpoints.from_dict(
        {
            "oauth": {"clientId": "client-1", "clientSecret": "secret-1", "tokenUrl": TOKEN_URL},
            "ccapi": {"baseUrl": BASE_URL},
        }
    )


@pytest.fixture
def make_token_manager(stamp_cache: str, endpoints: Endpoints):
    """Returns a factory for logged in token managers on a given session."""

    def factory(session, base_url=None, pin=None, refresh_token="refresh-1", device_id=None, access_token="access-1"):
        target = endpoints if base_url is None else Endpoints(base_url, endpoints.oauth)
        stamps = StampProvider(session, stamp_url=STAMP_URL, cache_dir=stamp_cache)
        tokens = TokenManager(session, target, stamps, refresh_token=refresh_token, pin=pin, device_id=device_id)
        tokens.access_token = access_token
        return tokens

    return factory
