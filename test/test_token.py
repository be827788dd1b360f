"""Unit Tests for token handling and request signing"""
from datetime import datetime, timedelta, timezone
import asyncio
import hashlib
import json

import aiohttp
from aioresponses import aioresponses
import pytest
from yarl import URL

from bluelinkconnect.api.token import AuthorizationMode, HeaderInclusion
from bluelinkconnect.exceptions import (
    BlueLinkAuthenticationException,
    BlueLinkConfigException,
    BlueLinkRequestException,
)

TOKEN_URL = "https://auth.example.com/token"
REGISTER_URL = "https://api.example.com/api/v1/spa/notifications/register"
PIN_URL = "https://api.example.com/api/v1/user/pin"
VEHICLES_URL = "https://api.example.com/api/v1/spa/vehicles"


def requests_to(mock: aioresponses, method: str, url: str) -> list:
    return mock.requests.get((method, URL(url)), [])


@pytest.mark.asyncio
async def test_control_token_reused_outside_margin(make_token_manager):
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, pin="1234", device_id="DEVICE-1")
        tokens.control_token = "control-1"
        tokens.control_token_expiry = datetime.now(timezone.utc) + timedelta(seconds=60)
        assert await tokens.ensure_control_token() == "control-1"


@pytest.mark.asyncio
async def test_control_token_renewed_inside_margin(response_mock: aioresponses, make_token_manager):
    response_mock.put(PIN_URL, payload={"controlToken": "control-2", "expiresTime": 600})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, pin="1234", device_id="DEVICE-1")
        tokens.control_token = "control-1"
        tokens.control_token_expiry = datetime.now(timezone.utc) + timedelta(seconds=20)
        assert await tokens.ensure_control_token() == "control-2"
        assert tokens.control_token_expiry > datetime.now(timezone.utc) + timedelta(seconds=60)

    body = json.loads(requests_to(response_mock, "PUT", PIN_URL)[0].kwargs["data"])
    assert body == {"deviceId": "DEVICE-1", "pin": "1234"}


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_exchange(response_mock: aioresponses, make_token_manager):
    response_mock.put(PIN_URL, payload={"controlToken": "control-2", "expiresTime": 600}, repeat=True)
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, pin="1234", device_id="DEVICE-1")
        results = await asyncio.gather(*[tokens.ensure_control_token() for _ in range(5)])
    assert results == ["control-2"] * 5
    assert len(requests_to(response_mock, "PUT", PIN_URL)) == 1


@pytest.mark.asyncio
async def test_control_token_requires_pin(make_token_manager):
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session)
        with pytest.raises(BlueLinkConfigException):
            await tokens.ensure_control_token()


@pytest.mark.asyncio
async def test_control_token_exchange_failure(response_mock: aioresponses, make_token_manager):
    response_mock.put(PIN_URL, status=400, payload={"errMsg": "invalid pin"})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, pin="1234", device_id="DEVICE-1")
        with pytest.raises(BlueLinkRequestException) as error:
            await tokens.ensure_control_token()
    assert error.value.http_status == 400


@pytest.mark.asyncio
async def test_login(response_mock: aioresponses, make_token_manager, jwt_access_token: str):
    response_mock.post(REGISTER_URL, payload={"resMsg": {"deviceId": "DEVICE-2"}})
    response_mock.post(TOKEN_URL, payload={"access_token": jwt_access_token, "refresh_token": "refresh-2"})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, access_token=None)
        await tokens.login()
    assert tokens.access_token == jwt_access_token
    assert tokens.refresh_token == "refresh-2"
    assert tokens.device_id == "DEVICE-2"
    grant = json.loads(requests_to(response_mock, "POST", TOKEN_URL)[0].kwargs["data"])
    assert grant["grant_type"] == "refresh_token"
    assert grant["refresh_token"] == "refresh-1"
    assert grant["client_id"] == "client-1"


@pytest.mark.asyncio
async def test_refresh_keeps_refresh_token_and_reads_connector(response_mock: aioresponses, make_token_manager):
    response_mock.post(REGISTER_URL, payload={"resMsg": {"deviceId": "DEVICE-2"}})
    response_mock.post(TOKEN_URL, payload={"connector": {"hyundai_bluelink": {"access_token": "access-2"}}})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session)
        await tokens.refresh_access_token()
    assert tokens.access_token == "access-2"
    assert tokens.refresh_token == "refresh-1"


@pytest.mark.asyncio
async def test_login_without_refresh_token(make_token_manager):
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, refresh_token=None)
        with pytest.raises(BlueLinkAuthenticationException):
            await tokens.login()


@pytest.mark.asyncio
async def test_login_rejected(response_mock: aioresponses, make_token_manager):
    response_mock.post(REGISTER_URL, status=404)
    response_mock.post(TOKEN_URL, status=400, payload={"error": "invalid_grant", "refresh_token": "leaked"})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session)
        with pytest.raises(BlueLinkAuthenticationException) as error:
            await tokens.login()
    assert "leaked" not in str(error.value)


@pytest.mark.asyncio
async def test_single_retry_after_unauthorized(response_mock: aioresponses, make_token_manager):
    response_mock.get(VEHICLES_URL, status=401)
    response_mock.get(VEHICLES_URL, payload={"resMsg": {"vehicles": []}})
    response_mock.post(REGISTER_URL, payload={"resMsg": {"deviceId": "DEVICE-2"}})
    response_mock.post(TOKEN_URL, payload={"access_token": "access-2", "refresh_token": "refresh-2"})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session)
        response = await tokens.send_with_retry("GET", VEHICLES_URL)
    assert response.status == 200
    calls = requests_to(response_mock, "GET", VEHICLES_URL)
    assert len(calls) == 2
    assert calls[0].kwargs["headers"]["Authorization"] == "Bearer access-1"
    assert calls[1].kwargs["headers"]["Authorization"] == "Bearer access-2"
    assert calls[1].kwargs["headers"]["ccsp-device-id"] == "DEVICE-2"


@pytest.mark.asyncio
async def test_second_unauthorized_is_raised(response_mock: aioresponses, make_token_manager):
    response_mock.get(VEHICLES_URL, status=401, repeat=True)
    response_mock.post(REGISTER_URL, payload={"resMsg": {"deviceId": "DEVICE-2"}}, repeat=True)
    response_mock.post(TOKEN_URL, payload={"access_token": "access-2"}, repeat=True)
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session)
        with pytest.raises(BlueLinkAuthenticationException):
            await tokens.send_with_retry("GET", VEHICLES_URL)
        response = await tokens.send_with_retry("GET", VEHICLES_URL, raise_unauthorized=False)
    assert response.status == 401
    assert len(requests_to(response_mock, "GET", VEHICLES_URL)) == 4


@pytest.mark.asyncio
async def test_decorate_headers(make_token_manager):
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, pin="1234", device_id="DEVICE-1")
        tokens.control_token = "control-1"
        tokens.control_token_expiry = datetime.now(timezone.utc) + timedelta(minutes=5)

        headers = await tokens.decorate({"Content-Type": "application/json"}, AuthorizationMode.CONTROL_TOKEN)
        assert headers["Authorization"] == "Bearer access-1"
        assert headers["ccsp-control-token"] == "control-1"
        assert headers["pin"] == hashlib.sha512(b"1234").hexdigest()
        assert headers["ccsp-device-id"] == "DEVICE-1"
        assert headers["ccsp-service-id"] == "client-1"
        assert headers["ccsp-application-id"] == "client-1"
        assert headers["Stamp"] == "STAMP-1"
        assert headers["Content-Type"] == "application/json"

        headers = await tokens.decorate(None, AuthorizationMode.CONTROL_TOKEN_CCSP)
        assert headers["Authorization"] == "Bearer control-1"
        assert headers["AuthorizationCCSP"] == "Bearer control-1"
        assert "pin" not in headers

        headers = await tokens.decorate(None, AuthorizationMode.CONTROL_TOKEN, HeaderInclusion.OMIT_CONTROL_TOKEN_AND_PIN)
        assert "ccsp-control-token" not in headers
        assert "pin" not in headers


@pytest.mark.asyncio
async def test_rotation_failures_are_swallowed(response_mock: aioresponses, make_token_manager):
    response_mock.post(REGISTER_URL, status=500)
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, device_id="DEVICE-1")
        await tokens.rotate_device_quietly()
    assert tokens.device_id != "DEVICE-1"
    assert tokens.device_registered is False


@pytest.mark.asyncio
async def test_authorization_code_with_override(response_mock: aioresponses, make_token_manager):
    override = "https://idpconnect-eu.example.com/auth/api/v2/user/oauth2/token"
    response_mock.post(REGISTER_URL, status=404)
    response_mock.post(TOKEN_URL, status=404)
    response_mock.post(override, payload={"access_token": "access-3", "refresh_token": "refresh-3"})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, refresh_token=None, access_token=None)
        await tokens.request_token_with_authorization_code("code-1", "https://app.example.com/redirect", override)
    assert tokens.access_token == "access-3"
    assert tokens.refresh_token == "refresh-3"
    # Hosts of the idpconnect family get a form encoded grant
    grant = requests_to(response_mock, "POST", override)[0].kwargs["data"]
    assert grant["grant_type"] == "authorization_code"
    assert grant["code"] == "code-1"
    assert grant["redirect_uri"] == "https://app.example.com/redirect"


@pytest.mark.asyncio
async def test_authorization_code_requires_refresh_token(response_mock: aioresponses, make_token_manager):
    response_mock.post(REGISTER_URL, status=404)
    response_mock.post(TOKEN_URL, payload={"access_token": "access-3"})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, refresh_token=None, access_token=None)
        with pytest.raises(BlueLinkAuthenticationException):
            await tokens.request_token_with_authorization_code("code-1", "https://app.example.com/redirect")
        with pytest.raises(ValueError):
            await tokens.request_token_with_authorization_code(" ", "https://app.example.com/redirect")
