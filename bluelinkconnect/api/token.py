#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Token lifecycle of a BlueLink account.

Owns the access and refresh tokens, the device identifier registered with
the push notification service and the short lived PIN gated control token.
Every request of the API layer is signed and sent through TokenManager.
"""

from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import urljoin, urlparse
import asyncio
import json
import logging
import secrets
import uuid

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from bluelinkconnect.api.endpoints import Endpoints
from bluelinkconnect.api.models import JsonResponse
from bluelinkconnect.api.stamp import StampProvider
from bluelinkconnect.const import (
    TIMEOUT,
    CONTROL_TOKEN_MARGIN,
    CONTROL_TOKEN_DEFAULT_TTL,
    USER_AGENT,
    PUSH_TYPE,
    PUSH_REG_ID_LENGTH,
    REGISTER_PATH,
    CONTROL_TOKEN_PATH,
    FORM_TOKEN_HOSTS,
)
from bluelinkconnect.exceptions import (
    BlueLinkAuthenticationException,
    BlueLinkConfigException,
    BlueLinkRequestException,
)
from bluelinkconnect.helpers.extract import opt_string, opt_timestamp
from bluelinkconnect.helpers.redact import format_body, redact_headers, redact_oauth_body, redact_url
from bluelinkconnect.helpers.token import hash_pin, token_expiry
from bluelinkconnect.strings.globals import (
    GRANT_TYPE,
    REFRESH_GRANT,
    CODE_GRANT,
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    CLIENT_ID,
    CLIENT_SECRET,
    REDIR_URI,
    CODE,
    CONNECTOR,
    RES_MSG,
    DEVICE_ID,
    PIN,
)
from bluelinkconnect.strings.http import (
    AUTHZ,
    AUTHZ_CCSP,
    CONTROL_TOKEN_HEADER,
    DEVICE_ID_HEADER,
    SERVICE_ID_HEADER,
    APPLICATION_ID_HEADER,
    PIN_HEADER,
    STAMP_HEADER,
    USER_AGENT_HEADER,
    CONTENT,
    ACCEPT,
    APP_JSON,
    APP_JSON_UTF8,
    APP_FORM,
    BEARER,
    HTTP_POST,
    HTTP_PUT,
    HTTP_UNAUTHORIZED,
    HTTP_NOT_FOUND,
)

_LOGGER = logging.getLogger(__name__)


class AuthorizationMode(Enum):
    """Which token authorizes a request."""
    ACCESS_TOKEN = 'access_token'
    CONTROL_TOKEN = 'control_token'
    CONTROL_TOKEN_CCSP = 'control_token_ccsp'


class HeaderInclusion(Enum):
    """Which optional secrets are attached to a request."""
    ALL = (True, True)
    OMIT_CONTROL_TOKEN_AND_PIN = (False, False)
    NO_PIN = (True, False)

    @property
    def include_control_token(self) -> bool:
        return self.value[0]

    @property
    def include_pin(self) -> bool:
        return self.value[1]


class TokenManager:
    """Token state and request signing for one account."""

    def __init__(
        self: TokenManager,
        http_session: ClientSession,
        endpoints: Endpoints,
        stamp_provider: StampProvider,
        refresh_token: Optional[str] = None,
        pin: Optional[str] = None,
        device_id: Optional[str] = None,
        fulldebug: bool = False,
    ) -> None:
        """
        Init token manager

        Arguments:
            http_session: aiohttp session shared by all requests
            endpoints: region and brand endpoints
            stamp_provider: source of the Stamp header
            refresh_token: Optional. Refresh token obtained out of band
            pin: Optional. Account PIN, required for vehicle commands
            device_id: Optional. Previously registered device id
            fulldebug: Trace requests and responses (redacted)
        """
        self._session = http_session
        self._endpoints = endpoints
        self._stamp_provider = stamp_provider
        self._session_fulldebug = fulldebug
        self._lock = asyncio.Lock()
        self._device_lock = asyncio.Lock()

        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = refresh_token
        self.device_id: Optional[str] = device_id
        self.device_registered = False
        self.control_token: Optional[str] = None
        self.control_token_expiry: Optional[datetime] = None

        self._pin = pin.strip() if pin and pin.strip() else None
        self._hashed_pin = hash_pin(self._pin) if self._pin else None
        if not self.control_token_supported:
            _LOGGER.debug('No PIN configured, control token secured features are disabled')

    @property
    def endpoints(self: TokenManager) -> Endpoints:
        return self._endpoints

    @property
    def control_token_supported(self: TokenManager) -> bool:
        """Control token exchange needs a PIN."""
        return self._pin is not None

  # Login and OAuth token handling
    async def login(self: TokenManager) -> None:
        """Exchange the refresh token and fetch a control token when a PIN is set."""
        _LOGGER.info('Initiating login')
        await self.refresh_access_token()
        self.invalidate_control_token()
        if self.control_token_supported:
            await self.ensure_control_token()

    async def refresh_access_token(self: TokenManager) -> None:
        """Exchange the refresh token for a new access token."""
        if not self.refresh_token or not self.refresh_token.strip():
            raise BlueLinkAuthenticationException('No refresh token available')
        token_url = self._endpoints.oauth.token_url
        if not token_url or not token_url.strip():
            raise BlueLinkConfigException('OAuth token URL is not configured')

        await self.rotate_device_quietly()

        fields = {
            GRANT_TYPE: REFRESH_GRANT,
            REFRESH_TOKEN: self.refresh_token,
            CLIENT_ID: self._endpoints.oauth.client_id,
            CLIENT_SECRET: self._endpoints.oauth.client_secret,
        }
        status, body = await self._token_request(token_url, fields)
        _LOGGER.info(f'Token refresh response received with status code [{status}]')
        if status >= 400:
            raise self._token_error('Token refresh failed', status, body)

        tokens = _resolve_tokens(_json_object(body))
        if tokens is None:
            raise self._token_error('Token refresh response did not contain tokens', status, body)
        self.access_token, refresh = tokens
        if refresh:
            self.refresh_token = refresh
        else:
            _LOGGER.info('Token refresh response omitted refresh_token, retaining existing refresh token')
        self._log_token_expiry()

    async def request_token_with_authorization_code(
        self: TokenManager,
        code: str,
        redirect_uri: str,
        token_url_override: Optional[str] = None,
    ) -> None:
        """
        Exchange an authorization code captured outside the library for tokens.

        Parameters:
            code: authorization code returned by the identity provider
            redirect_uri: redirect URI used when requesting the code
            token_url_override: Optional. Token URL tried once when the configured one returns 404
        """
        token_url = self._endpoints.oauth.token_url
        if not token_url or not token_url.strip():
            raise BlueLinkConfigException('OAuth token URL is not configured')
        if not code or not code.strip():
            raise ValueError('Authorization code must not be empty')
        if not redirect_uri or not redirect_uri.strip():
            raise ValueError('Redirect URI must not be empty')

        await self.rotate_device_quietly()

        fields = {
            GRANT_TYPE: CODE_GRANT,
            CODE: code,
            CLIENT_ID: self._endpoints.oauth.client_id,
            CLIENT_SECRET: self._endpoints.oauth.client_secret,
            REDIR_URI: redirect_uri,
        }
        status, body = await self._token_request(token_url, fields)
        if status == HTTP_NOT_FOUND and token_url_override and token_url_override != token_url:
            _LOGGER.info(f'Token request to {redact_url(token_url)} returned 404, retrying with {redact_url(token_url_override)}')
            status, body = await self._token_request(token_url_override, fields)
        if status >= 400:
            raise self._token_error('Token request failed', status, body)

        tokens = _resolve_tokens(_json_object(body))
        if tokens is None or not tokens[1]:
            raise self._token_error('Token response did not contain tokens', status, body)
        self.access_token, self.refresh_token = tokens
        self._log_token_expiry()

    async def _token_request(self: TokenManager, url: str, fields: dict) -> tuple:
        """POST a token grant, form encoded for hosts that require it."""
        fields = {key: value for key, value in fields.items() if value is not None}
        if _requires_form(url):
            kwargs = {'data': fields, 'headers': {CONTENT: APP_FORM}}
        else:
            kwargs = {'data': json.dumps(fields), 'headers': {CONTENT: APP_JSON}}
        if self._session_fulldebug:
            _LOGGER.debug(f'HTTP POST "{redact_url(url)}" (token grant {fields.get(GRANT_TYPE)})')
        try:
            async with self._session.request(
                HTTP_POST,
                url,
                timeout=ClientTimeout(total=TIMEOUT.seconds),
                raise_for_status=False,
                **kwargs
            ) as response:
                body = await response.text()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise BlueLinkAuthenticationException(f'Token endpoint unreachable: {error}') from error
        if self._session_fulldebug:
            _LOGGER.debug(f'Token response [{status}]: {redact_oauth_body(body)}')
        return status, body

    def _token_error(self: TokenManager, context: str, status: int, body: str) -> BlueLinkAuthenticationException:
        sanitized = redact_oauth_body(body)
        message = f'{context} (HTTP {status})'
        if sanitized:
            _LOGGER.warning(f'{message} - response body: {sanitized}')
            return BlueLinkAuthenticationException(f'{message}: {sanitized}')
        _LOGGER.warning(f'{message} - empty response body')
        return BlueLinkAuthenticationException(message)

    def _log_token_expiry(self: TokenManager) -> None:
        expires = token_expiry(self.access_token)
        if expires is not None:
            _LOGGER.debug(f'Access token is valid until {expires.strftime("%Y-%m-%d %H:%M:%S")} UTC')

  # Device registration
    async def rotate_device(self: TokenManager) -> None:
        """Generate a new device id and register it."""
        _LOGGER.debug('Rotating device identifier')
        async with self._device_lock:
            self.device_id = str(uuid.uuid4()).upper()
            self.device_registered = False
            await self._register_device()

    async def rotate_device_quietly(self: TokenManager) -> None:
        """Rotate the device id, logging instead of raising on failure."""
        try:
            await self.rotate_device()
        except Exception as error:
            _LOGGER.debug(f'Device rotation failed: {error}')

    async def register_device(self: TokenManager) -> None:
        """Register the current device id with the push notification service."""
        async with self._device_lock:
            await self._register_device()

    async def _register_device(self: TokenManager) -> None:
        if self.device_registered:
            _LOGGER.debug(f'Skipping device registration, device {self.device_id} is already registered')
            return
        if not self.device_id:
            self.device_id = str(uuid.uuid4()).upper()
            self.device_registered = False

        url = urljoin(self._endpoints.base_url, REGISTER_PATH)
        payload = {
            'pushRegId': secrets.token_hex(PUSH_REG_ID_LENGTH // 2),
            'pushType': PUSH_TYPE,
            'uuid': self.device_id,
        }
        headers = {
            CONTENT: APP_JSON_UTF8,
            ACCEPT: APP_JSON,
            USER_AGENT_HEADER: USER_AGENT,
        }
        oauth = self._endpoints.oauth
        if oauth.client_id:
            headers[SERVICE_ID_HEADER] = oauth.client_id
        if oauth.effective_application_id:
            headers[APPLICATION_ID_HEADER] = oauth.effective_application_id
        stamp = await self._stamp_provider.get_stamp()
        if stamp:
            headers[STAMP_HEADER] = stamp

        response = await self._send(HTTP_POST, url, headers, json.dumps(payload))
        if response.status >= 400:
            if response.status == HTTP_NOT_FOUND:
                _LOGGER.info(f'Device registration endpoint {url} returned 404, continuing without registration')
                return
            _LOGGER.warning(f'Device registration failed with status code [{response.status}]: {response.body_for_log}')
            raise BlueLinkRequestException(f'Device registration failed: {response.status}', response.status)

        data = response.json()
        data = data if isinstance(data, dict) else {}
        res_msg = data.get(RES_MSG) if isinstance(data.get(RES_MSG), dict) else {}
        registered = opt_string(res_msg, 'deviceId', 'deviceID') or opt_string(data, 'deviceId', 'deviceID')
        if not registered:
            _LOGGER.warning(f'Device registration response from {url} did not contain a deviceId')
            return
        self.device_id = registered
        self.device_registered = True
        _LOGGER.debug(f'Device registered with identifier {registered}')

  # Control token
    def invalidate_control_token(self: TokenManager) -> None:
        self.control_token = None
        self.control_token_expiry = None

    async def ensure_control_token(self: TokenManager) -> str:
        """Return a control token valid for at least the safety margin, exchanging the PIN when needed."""
        if not self.control_token_supported:
            raise BlueLinkConfigException('Control token exchange is not available without a configured PIN')
        async with self._lock:
            token = self.control_token
            expiry = self.control_token_expiry
            if token and expiry is not None and datetime.now(timezone.utc) < expiry - CONTROL_TOKEN_MARGIN:
                return token
            await self._request_control_token()
            if not self.control_token:
                raise BlueLinkRequestException('Control token request failed: no token in response')
            return self.control_token

    async def _request_control_token(self: TokenManager) -> None:
        if not self.device_id:
            raise BlueLinkConfigException('Device ID is not available for control token exchange')

        url = urljoin(self._endpoints.base_url, CONTROL_TOKEN_PATH)
        payload = {DEVICE_ID: self.device_id, PIN: self._pin}
        response = await self.send_with_retry(HTTP_PUT, url, payload=payload)
        if not response.ok:
            _LOGGER.warning(f'Control token request failed with status code [{response.status}]: {response.body_for_log}')
            raise BlueLinkRequestException(f'Control token request failed: {response.status}', response.status)

        data = response.json()
        if not isinstance(data, dict):
            raise BlueLinkRequestException('Control token response did not contain token', response.status)
        token = opt_string(data, 'controlToken', 'token', 'accessToken')
        if not token:
            raise BlueLinkRequestException('Control token response did not contain token', response.status)
        expiry = opt_timestamp(data, 'controlTokenExpiry', 'controlTokenExpiryUTC', 'expiresAt', 'expiryTime')
        if expiry is None:
            expiry = datetime.now(timezone.utc) + CONTROL_TOKEN_DEFAULT_TTL
        self.control_token = token
        self.control_token_expiry = expiry
        _LOGGER.debug(f'Control token acquired, valid until {expiry.isoformat()}')

  # Request signing
    async def decorate(
        self: TokenManager,
        headers: Optional[dict] = None,
        mode: AuthorizationMode = AuthorizationMode.ACCESS_TOKEN,
        inclusion: HeaderInclusion = HeaderInclusion.ALL,
    ) -> dict:
        """
        Return a copy of headers with authorization, identity and stamp headers applied.

        Parameters:
            headers: Optional. Request specific headers, e.g. Content-Type
            mode: token used on the Authorization header
            inclusion: whether control token and PIN digest may be attached
        """
        headers = dict(headers or {})
        authorization = BEARER + (self.access_token or '')
        if mode is AuthorizationMode.CONTROL_TOKEN_CCSP:
            control_token = await self.ensure_control_token()
            if control_token:
                authorization = BEARER + control_token
                headers[AUTHZ_CCSP] = authorization
        elif mode is AuthorizationMode.CONTROL_TOKEN and inclusion.include_control_token and self.control_token_supported:
            try:
                control_token = await self.ensure_control_token()
                if control_token:
                    headers[CONTROL_TOKEN_HEADER] = control_token
            except BlueLinkConfigException as error:
                _LOGGER.debug(f'Control token not available, proceeding without control token header: {error}')
        headers[AUTHZ] = authorization

        if self.device_id:
            headers[DEVICE_ID_HEADER] = self.device_id
        if inclusion.include_pin and self._hashed_pin and mode is not AuthorizationMode.CONTROL_TOKEN_CCSP:
            headers[PIN_HEADER] = self._hashed_pin
        oauth = self._endpoints.oauth
        if oauth.client_id:
            headers[SERVICE_ID_HEADER] = oauth.client_id
        if oauth.effective_application_id:
            headers[APPLICATION_ID_HEADER] = oauth.effective_application_id
        stamp = await self._stamp_provider.get_stamp()
        if stamp:
            headers[STAMP_HEADER] = stamp
        return headers

    async def send_with_retry(
        self: TokenManager,
        method: str,
        url: str,
        mode: AuthorizationMode = AuthorizationMode.ACCESS_TOKEN,
        inclusion: HeaderInclusion = HeaderInclusion.ALL,
        payload=None,
        raise_unauthorized: bool = True,
    ) -> JsonResponse:
        """
        Send a signed request, refreshing the tokens and retrying once on 401.

        Parameters:
            method: HTTP method
            url: absolute URL
            mode: token used on the Authorization header
            inclusion: whether control token and PIN digest may be attached
            payload: Optional. JSON body
            raise_unauthorized: raise BlueLinkAuthenticationException when the retry is rejected too,
                callers with their own fallback for 401 pass False and get the response
        Returns:
            JsonResponse with status and body
        """
        body = json.dumps(payload) if payload is not None else None
        base_headers = {CONTENT: APP_JSON} if body is not None else {}

        headers = await self.decorate(base_headers, mode, inclusion)
        response = await self._send(method, url, headers, body)
        if response.status != HTTP_UNAUTHORIZED:
            return response

        _LOGGER.info('Token expired, refreshing')
        await self.refresh_access_token()
        self.invalidate_control_token()
        headers = await self.decorate(base_headers, mode, inclusion)
        response = await self._send(method, url, headers, body)
        if response.status == HTTP_UNAUTHORIZED and raise_unauthorized:
            raise BlueLinkAuthenticationException(f'Request to {redact_url(url)} unauthorized after token refresh')
        return response

    async def _send(self: TokenManager, method: str, url: str, headers: dict, body: Optional[str]) -> JsonResponse:
        """Perform a HTTP query"""
        if self._session_fulldebug:
            _LOGGER.debug(f'HTTP {method} "{redact_url(url)}" headers: {redact_headers(headers)} body: {format_body(body)}')
        try:
            async with self._session.request(
                method,
                url,
                headers=headers,
                data=body,
                timeout=ClientTimeout(total=TIMEOUT.seconds),
                raise_for_status=False,
            ) as response:
                text = await response.text()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise BlueLinkRequestException(f'HTTP {method} {redact_url(url)} failed: {error}') from error

        result = JsonResponse(status, text, format_body(text))
        if self._session_fulldebug:
            _LOGGER.debug(f'Request for "{redact_url(url)}" returned with status code [{status}], response: {result.body_for_log}')
        else:
            _LOGGER.debug(f'Request for "{redact_url(url)}" returned with status code [{status}]')
        return result


def _requires_form(url: str) -> bool:
    """Token hosts of the CCS/idpconnect family only accept form encoded grants."""
    netloc = (urlparse(url).netloc or '').lower()
    return any(fragment in netloc for fragment in FORM_TOKEN_HOSTS)


def _json_object(body: str) -> Optional[dict]:
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _resolve_tokens(data: Optional[dict]) -> Optional[tuple]:
    """(access_token, refresh_token) from a plain or connector keyed token response."""
    if data is None:
        return None
    connectors = data.get(CONNECTOR)
    if isinstance(connectors, dict):
        for connector in connectors.values():
            access = opt_string(connector, ACCESS_TOKEN)
            if access:
                return access, opt_string(connector, REFRESH_TOKEN)
    access = opt_string(data, ACCESS_TOKEN)
    if not access:
        return None
    return access, opt_string(data, REFRESH_TOKEN)
