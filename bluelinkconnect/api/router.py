#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Endpoint selection and fallbacks for vehicle reads.

The same resource lives under different paths depending on the account's
API generation (SPA v1 or v2, CCS2 capable or not). Each read tries its
candidates in a fixed order and every fallback step runs at most once
per call.
"""

from __future__ import annotations
from enum import Enum
from typing import Optional
import json
import logging
import re

from bluelinkconnect.api.ccs2 import map_ccs2_status
from bluelinkconnect.api.models import JsonResponse, Reservation, VehicleLocation, VehicleStatus
from bluelinkconnect.api.normalizer import (
    find_notification_result,
    latest_notification_text,
    load_json_object,
    notification_records,
    parse_reservation,
    parse_vehicle_location,
    parse_vehicle_status,
    parse_vehicle_summaries,
    unwrap_vehicle_status,
)
from bluelinkconnect.api.token import AuthorizationMode, HeaderInclusion, TokenManager
from bluelinkconnect.const import SPA_V1, SPA_V2, CCS2_PREFIX, DISALLOWED_BODY
from bluelinkconnect.exceptions import (
    BlueLinkCommandFailedException,
    BlueLinkCommandTimeoutException,
    BlueLinkRequestException,
)
from bluelinkconnect.strings.globals import (
    DEVICE_ID,
    UNKNOWN_VIN,
    RESULT_SUCCESS,
    RESULT_FAIL,
    RESULT_NO_RESPONSE,
)
from bluelinkconnect.strings.http import (
    HTTP_GET,
    HTTP_POST,
    HTTP_OK,
    HTTP_UNAUTHORIZED,
    HTTP_FORBIDDEN,
    HTTP_NOT_FOUND,
    HTTP_NOT_ALLOWED,
    HTTP_FALLBACK,
)

_LOGGER = logging.getLogger(__name__)

SPA_PATTERN = re.compile(r'/api/v[12]/spa', re.IGNORECASE)


class CommandResult(Enum):
    """State of a command as read from the notifications feed."""
    PENDING = 'pending'
    SUCCESS = 'success'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'


# URI construction
def ensure_spa_v1_base_url(url: str) -> str:
    return _ensure_spa_base_url(url, SPA_V1)


def ensure_spa_v2_base_url(url: str) -> str:
    return _ensure_spa_base_url(url, SPA_V2)


def _ensure_spa_base_url(url: str, target: str) -> str:
    normalized = url.strip()
    if '/api/' not in normalized.lower():
        normalized = normalized[:-1] if normalized.endswith('/') else normalized
        normalized = normalized + target
    return SPA_PATTERN.sub(target, normalized)


def _is_v1(url: str) -> bool:
    return SPA_V1 in url.lower()


def _with_slash(url: str) -> str:
    return url if url.endswith('/') else url + '/'


def build_spa_vehicle_uri(base_url: str, vehicle_id: str, suffix: Optional[str], use_v2: bool, ccs2: bool = False) -> str:
    """
    Build {spa base}/vehicles/{vehicle_id}/{suffix}.

    Parameters:
        base_url: configured ccapi base URL, with or without an /api/vN/spa part
        vehicle_id: vehicle id from the vehicle list
        suffix: resource path below the vehicle, e.g. "status/latest"
        use_v2: target SPA v2, else SPA v1
        ccs2: prefix the suffix with "ccs2/" unless it already is
    """
    if not base_url or not base_url.strip():
        raise ValueError('baseUrl must not be blank')
    if not vehicle_id or not vehicle_id.strip():
        raise ValueError('vehicleId must not be blank')
    if ccs2 and suffix and not suffix.startswith(CCS2_PREFIX):
        suffix = CCS2_PREFIX + suffix
    normalized = ensure_spa_v2_base_url(base_url) if use_v2 else ensure_spa_v1_base_url(base_url)
    path = f'vehicles/{vehicle_id}'
    if suffix:
        path += suffix if suffix.startswith('/') else '/' + suffix
    return _with_slash(normalized) + path


def build_control_uri(base_url: str, vehicle_id: str, control: str) -> str:
    """Control endpoint on the SPA version the base URL names, v2 when it names none."""
    if not base_url or not base_url.strip() or not vehicle_id or not vehicle_id.strip() or not control or not control.strip():
        raise ValueError('Base URL, vehicle ID and control must not be blank.')
    normalized = ensure_spa_v1_base_url(base_url) if _is_v1(base_url) else ensure_spa_v2_base_url(base_url)
    return f'{_with_slash(normalized)}vehicles/{vehicle_id}/control/{control}'


def build_remote_door_uri(base_url: str, vehicle_id: str) -> str:
    if not base_url or not base_url.strip() or not vehicle_id or not vehicle_id.strip():
        raise ValueError('Base URL and vehicle ID must not be blank.')
    if _is_v1(base_url):
        return f'{_with_slash(ensure_spa_v1_base_url(base_url))}vehicles/{vehicle_id}/control/door'
    return f'{_with_slash(ensure_spa_v2_base_url(base_url))}vehicles/{vehicle_id}/ccs2/control/door'


def should_fallback(status: int, body: Optional[str]) -> bool:
    """Whether a status read must be retried against status/latest."""
    if status in HTTP_FALLBACK:
        return True
    return DISALLOWED_BODY in (body or '').lower()


def _vin(vin: Optional[str]) -> str:
    return vin if vin and vin.strip() else UNKNOWN_VIN


class EndpointRouter:
    """Vehicle reads with their endpoint fallbacks."""

    def __init__(self: EndpointRouter, token_manager: TokenManager) -> None:
        self._tokens = token_manager
        # Set once the legacy status endpoint rejected POST and accepted GET
        self.post_disabled = False

    @property
    def base_url(self: EndpointRouter) -> str:
        return self._tokens.endpoints.base_url

    @property
    def _read_mode(self: EndpointRouter) -> AuthorizationMode:
        if self._tokens.control_token_supported:
            return AuthorizationMode.CONTROL_TOKEN
        return AuthorizationMode.ACCESS_TOKEN

  # Vehicle list
    async def list_vehicles(self: EndpointRouter) -> list:
        """Vehicles of the account as VehicleSummary objects."""
        await self._tokens.register_device()
        response = await self._tokens.send_with_retry(HTTP_GET, f'{self.base_url}/vehicles')
        if response.status == HTTP_FORBIDDEN:
            _LOGGER.debug(f'Vehicle list request disallowed for {self.base_url} ({response.status}), retrying with SPA v1 base')
            v1_base = ensure_spa_v1_base_url(self.base_url)
            response = await self._tokens.send_with_retry(HTTP_GET, f'{v1_base}/vehicles')
        if not response.ok:
            _LOGGER.warning(f'Vehicle list request failed: {response.status} {response.body_for_log}')
            raise BlueLinkRequestException(f'Vehicle list request failed: {response.status}', response.status)
        try:
            data = json.loads(response.body)
        except ValueError as error:
            raise BlueLinkRequestException(f'Vehicle list response is not valid JSON: {error}', response.status) from error
        return parse_vehicle_summaries(data)

  # Vehicle status
    async def get_vehicle_status(self: EndpointRouter, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> VehicleStatus:
        """
        Current status, from the CCS2 document when supported, else the legacy endpoints.

        Arguments:
            vehicle_id: vehicle id from the vehicle list
            vin: VIN used for logging and stored on the result
            ccs2: vehicle supports the CCS2 protocol
        Returns:
            VehicleStatus with last_notification set when the feed has one
        """
        vin = _vin(vin)
        status = None
        if ccs2:
            ccs2_root = await self._fetch_ccs2_status(vehicle_id, vin)
            if ccs2_root is not None:
                status = map_ccs2_status(vin, ccs2_root)
        if status is None:
            status = await self._fetch_legacy_status(vehicle_id, vin, ccs2)

        try:
            status.last_notification = await self.fetch_latest_notification(vehicle_id)
        except Exception as error:
            _LOGGER.debug(f'Failed to fetch latest notification for {vin}: {error}')
        return status

    async def _fetch_ccs2_status(self: EndpointRouter, vehicle_id: str, vin: str) -> Optional[dict]:
        url = build_spa_vehicle_uri(self.base_url, vehicle_id, 'ccs2/carstatus/latest', True)
        try:
            response = await self._tokens.send_with_retry(
                HTTP_GET, url, AuthorizationMode.CONTROL_TOKEN, HeaderInclusion.OMIT_CONTROL_TOKEN_AND_PIN,
                raise_unauthorized=False,
            )
            if self._tokens.control_token_supported and response.status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
                _LOGGER.debug(f'CCS2 car status control-token request disallowed for {vin} ({response.status}), retrying with access token')
                response = await self._tokens.send_with_retry(
                    HTTP_GET, url, AuthorizationMode.ACCESS_TOKEN, HeaderInclusion.OMIT_CONTROL_TOKEN_AND_PIN,
                )
            if response.ok:
                _LOGGER.debug(f'CCS2 car status response for {vin}: {response.body_for_log}')
                root = load_json_object(response.body)
                return unwrap_vehicle_status(root) or root
            if response.status // 100 == 4:
                _LOGGER.debug(f'CCS2 car status unavailable for {vin}: status {response.status} {response.body_for_log}')
            else:
                _LOGGER.warning(f'CCS2 car status request failed for {vin}: {response.status} {response.body_for_log}')
        except Exception as error:
            _LOGGER.debug(f'CCS2 car status request failed for {vin}: {error}')
        return None

    async def _fetch_legacy_status(self: EndpointRouter, vehicle_id: str, vin: str, ccs2: bool) -> VehicleStatus:
        """
        Legacy status read, POST first unless disabled for the account.

        A POST rejected with 404/405 falls back to GET and, when the GET
        succeeds, POST is disabled until a later POST succeeds. Any other
        POST failure falls back to GET for this call only.
        """
        url = f'{self.base_url}/vehicles/{vehicle_id}/status'
        device_id = self._tokens.device_id
        prefer_get = self.post_disabled or SPA_V2 in self.base_url

        if device_id and not prefer_get:
            response = await self._tokens.send_with_retry(
                HTTP_POST, url, payload={DEVICE_ID: device_id}, raise_unauthorized=False,
            )
            if not response.ok:
                unsupported = response.status in (HTTP_NOT_FOUND, HTTP_NOT_ALLOWED)
                if unsupported:
                    _LOGGER.debug(f'Vehicle status POST is unsupported for {vin}, retrying with GET fallback (status {response.status})')
                else:
                    _LOGGER.debug(f'Vehicle status POST failed for {vin}, retrying with legacy GET: {response.status} {response.body_for_log}')
                get_response = await self._tokens.send_with_retry(HTTP_GET, url, raise_unauthorized=False)
                if unsupported and get_response.ok:
                    if not self.post_disabled:
                        _LOGGER.debug(f'Vehicle status POST is unsupported for {vin}, persisting GET fallback after successful response')
                    self.post_disabled = True
                elif not get_response.ok:
                    _LOGGER.debug(f'Vehicle status GET fallback failed for {vin}: {get_response.status} {get_response.body_for_log}')
                response = get_response
            elif self.post_disabled:
                self.post_disabled = False
        else:
            response = await self._tokens.send_with_retry(HTTP_GET, url, raise_unauthorized=False)

        if response.status != HTTP_OK:
            if should_fallback(response.status, response.body):
                fallback = await self._fetch_legacy_status_latest(vehicle_id, vin, ccs2)
                if fallback is not None:
                    return parse_vehicle_status(fallback, vin)
            _LOGGER.warning(f'Vehicle status request failed for {vin}: {response.status} {response.body_for_log}')
            raise BlueLinkRequestException(f'Vehicle status request failed: {response.status}', response.status)

        return parse_vehicle_status(load_json_object(response.body), vin)

    async def _fetch_legacy_status_latest(self: EndpointRouter, vehicle_id: str, vin: str, ccs2: bool) -> Optional[dict]:
        response = await self.get_vehicle_status_latest_raw(vehicle_id, vin, SPA_V2 in self.base_url, ccs2)
        if response is None or not response.ok:
            _LOGGER.debug(f'Legacy vehicle status latest request for {vin} did not succeed')
            return None
        if not response.body or not response.body.strip():
            _LOGGER.debug(f'Legacy vehicle status latest response for {vin} did not contain a body')
            return None
        try:
            return load_json_object(response.body)
        except Exception as error:
            _LOGGER.warning(f'Failed to parse legacy vehicle status latest payload for {vin}: {error}')
            return None

    async def get_vehicle_status_raw(self: EndpointRouter, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> Optional[JsonResponse]:
        """Raw status document, status/latest on SPA v1 when the status endpoint is refused."""
        vin = _vin(vin)
        response = await self.fetch_spa_vehicle_data(vehicle_id, vin, 'status', 'status', True, ccs2)
        if should_fallback(response.status, response.body):
            response = await self.get_vehicle_status_latest_raw(vehicle_id, vin, False, ccs2)
        return response

    async def get_vehicle_status_latest_raw(
        self: EndpointRouter,
        vehicle_id: str,
        vin: Optional[str],
        use_v2: bool = True,
        ccs2: bool = False,
    ) -> Optional[JsonResponse]:
        """status/latest document, None when neither SPA version returns it."""
        vin = _vin(vin)
        base_url = self.base_url.strip().rstrip('/')
        url = build_spa_vehicle_uri(base_url, vehicle_id, 'status/latest', use_v2, ccs2)
        response = await self._tokens.send_with_retry(HTTP_GET, url)
        if use_v2 and response.status in (HTTP_FORBIDDEN, HTTP_NOT_FOUND):
            _LOGGER.debug(f'Vehicle status latest request disallowed or missing for {vin} ({response.status}) on SPA v2, retrying with SPA v1')
            v1_url = f'{ensure_spa_v1_base_url(self.base_url)}/vehicles/{vehicle_id}/status/latest'
            response = await self._tokens.send_with_retry(HTTP_GET, v1_url)
        if response.status == HTTP_OK:
            return response
        _LOGGER.warning(f'Vehicle status latest request failed for {vin}: {response.status} {response.body_for_log}')
        return None

    async def get_vehicle_ccs2_car_status_latest(self: EndpointRouter, vehicle_id: str, vin: Optional[str]) -> JsonResponse:
        """Unwrapped CCS2 carstatus document, 404 with an empty object when unavailable."""
        data = await self._fetch_ccs2_status(vehicle_id, _vin(vin))
        if data is None:
            return JsonResponse(HTTP_NOT_FOUND, '{}', '{}')
        body = json.dumps(data)
        return JsonResponse(HTTP_OK, body, body)

    async def fetch_spa_vehicle_data(
        self: EndpointRouter,
        vehicle_id: str,
        vin: Optional[str],
        suffix: str,
        description: str,
        use_v2: bool = True,
        ccs2: bool = False,
    ) -> JsonResponse:
        """
        GET a resource below the vehicle.

        SPA v2 answering 403/404 is retried on SPA v1, then a control token
        request answering 401/403 is retried with the access token.
        """
        vin = _vin(vin)
        inclusion = HeaderInclusion.NO_PIN if suffix.startswith(CCS2_PREFIX) or ccs2 else HeaderInclusion.ALL
        mode = self._read_mode
        url = build_spa_vehicle_uri(self.base_url, vehicle_id, suffix, use_v2, ccs2)
        response = await self._tokens.send_with_retry(HTTP_GET, url, mode, inclusion, raise_unauthorized=False)

        if use_v2 and response.status in (HTTP_NOT_FOUND, HTTP_FORBIDDEN):
            _LOGGER.debug(f'{description} SPA v2 request disallowed for {vin} ({response.status}), retrying with SPA v1')
            url = build_spa_vehicle_uri(self.base_url, vehicle_id, suffix, False, ccs2)
            response = await self._tokens.send_with_retry(HTTP_GET, url, mode, inclusion, raise_unauthorized=False)

        if mode is AuthorizationMode.CONTROL_TOKEN and response.status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
            _LOGGER.debug(f'{description} control-token request disallowed for {vin} ({response.status}), retrying with access token')
            response = await self._tokens.send_with_retry(HTTP_GET, url, AuthorizationMode.ACCESS_TOKEN, raise_unauthorized=False)

        if response.ok:
            _LOGGER.debug(f'{description} response for {vin}: {response.body_for_log}')
        elif response.status // 100 == 4:
            _LOGGER.debug(f'{description} unavailable for {vin}: status {response.status} {response.body_for_log}')
        else:
            _LOGGER.warning(f'{description} request failed for {vin}: {response.status} {response.body_for_log}')
        return response

  # Location
    async def get_vehicle_location(self: EndpointRouter, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> VehicleLocation:
        """First valid position of the location cascade, NaN coordinates when none is found."""
        vin = _vin(vin)
        for suffix, description in (
            ('location/latest', 'location'),
            ('ccs2/location/latest', 'ccs2 location'),
            ('ccs2/carstatus/latest', 'ccs2 carstatus'),
        ):
            try:
                response = await self.fetch_spa_vehicle_data(vehicle_id, vin, suffix, description, True, ccs2)
                location = parse_vehicle_location(response.json())
                if location is not None and location.is_valid:
                    _LOGGER.debug(f'Location retrieved for {vin} via /{suffix}: {location.latitude}, {location.longitude}')
                    return location
            except Exception as error:
                _LOGGER.debug(f'Location retrieval via /{suffix} failed for {vin}: {error}')

        try:
            location = parse_vehicle_location(await self._fetch_legacy_status_latest(vehicle_id, vin, ccs2))
            if location is not None and location.is_valid:
                _LOGGER.debug(f'Location retrieved for {vin} via legacy vehicle status: {location.latitude}, {location.longitude}')
                return location
        except Exception as error:
            _LOGGER.debug(f'Vehicle status latest location retrieval failed for {vin}: {error}')

        _LOGGER.debug(f'Location unavailable for {vin}')
        return VehicleLocation()

  # Reports
    async def get_vehicle_monthly_report(self: EndpointRouter, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> JsonResponse:
        """Monthly driving report, tried as monthlyreport/v2 on SPA v2 and v1, then monthlyreport on v1."""
        vin = _vin(vin)
        response = await self.fetch_spa_vehicle_data(vehicle_id, vin, 'monthlyreport/v2', 'monthly report', True, ccs2)
        if response.status != HTTP_NOT_FOUND:
            return response
        _LOGGER.debug(f'Monthly report SPA v2 endpoint unavailable for {vin}, retrying with SPA v1 base')
        response = await self.fetch_spa_vehicle_data(vehicle_id, vin, 'monthlyreport/v2', 'monthly report', False, ccs2)
        if response.status != HTTP_NOT_FOUND:
            return response
        _LOGGER.debug(f'Monthly report SPA v1 /v2 endpoint unavailable for {vin}, retrying without /v2 suffix')
        return await self.fetch_spa_vehicle_data(vehicle_id, vin, 'monthlyreport', 'monthly report', False, ccs2)

    async def get_vehicle_monthly_report_list(self: EndpointRouter, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> JsonResponse:
        return await self.fetch_spa_vehicle_data(vehicle_id, vin, 'monthlyreportlist/latest', 'monthly report list', True, ccs2)

  # Notifications
    def _notifications_url(self: EndpointRouter, vehicle_id: str) -> str:
        return f'{_with_slash(ensure_spa_v1_base_url(self.base_url))}notifications/{vehicle_id}/records'

    async def fetch_latest_notification(self: EndpointRouter, vehicle_id: str) -> Optional[str]:
        """Text of the newest notification record, None when the feed is empty or unavailable."""
        response = await self._tokens.send_with_retry(HTTP_GET, self._notifications_url(vehicle_id))
        if response.status >= 400 or not response.body or not response.body.strip():
            return None
        records = notification_records(response.json())
        if records is None:
            return None
        return latest_notification_text(records)

    async def fetch_command_result(self: EndpointRouter, vehicle_id: str, vin: Optional[str], message_id: Optional[str]) -> CommandResult:
        """
        Look up the result of a command in the notifications feed.

        The device id is rotated after every terminal result.
        """
        if not message_id or not message_id.strip():
            return CommandResult.PENDING
        vin = _vin(vin)
        response = await self._tokens.send_with_retry(HTTP_GET, self._notifications_url(vehicle_id))
        _LOGGER.debug(f'Command result polling (notifications) {message_id} for {vin} status: {response.status}')

        if response.status >= 400:
            # Heuristic: the backend drops the session when it cannot push the result
            # to the registered device, the command itself most likely went through.
            _LOGGER.debug(f'Job polling failed via notifications for {vin} with HTTP {response.status}: {response.body_for_log}')
            await self._tokens.rotate_device_quietly()
            return CommandResult.SUCCESS

        if not response.body or not response.body.strip():
            return CommandResult.SUCCESS

        try:
            records = notification_records(load_json_object(response.body))
        except Exception as error:
            _LOGGER.debug(f'Failed to parse notifications result response for {message_id}: {error}')
            return CommandResult.PENDING
        if records is None:
            _LOGGER.debug(f'No records array found in notifications response: {response.body_for_log}')
            return CommandResult.PENDING

        result = find_notification_result(records, message_id)
        if result is None:
            return CommandResult.PENDING
        result = result.lower()
        if result == RESULT_SUCCESS:
            outcome = CommandResult.SUCCESS
        elif result == RESULT_FAIL:
            outcome = CommandResult.FAILED
        elif result == RESULT_NO_RESPONSE:
            # Heuristic: "non-response" means the vehicle never answered
            outcome = CommandResult.TIMED_OUT
        else:
            return CommandResult.PENDING
        await self._tokens.rotate_device_quietly()
        return outcome

    async def poll_vehicle_command_result(self: EndpointRouter, vehicle_id: str, vin: Optional[str], message_id: Optional[str]) -> bool:
        """
        Poll the notifications feed once for a command.

        Returns:
            True when the command succeeded, False while it is pending
        Raises:
            BlueLinkCommandFailedException: the backend reported a failure
            BlueLinkCommandTimeoutException: the vehicle did not respond
        """
        result = await self.fetch_command_result(vehicle_id, vin, message_id)
        if result is CommandResult.FAILED:
            raise BlueLinkCommandFailedException(f'Command failed according to notification: {RESULT_FAIL}')
        if result is CommandResult.TIMED_OUT:
            raise BlueLinkCommandTimeoutException(f'Command timed out: {RESULT_NO_RESPONSE}')
        return result is CommandResult.SUCCESS

  # Reservation
    async def get_reservation(self: EndpointRouter, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> Optional[Reservation]:
        """Stored departure reservation, None when unavailable."""
        vin = _vin(vin)
        url = build_spa_vehicle_uri(self.base_url, vehicle_id, 'control/reservation/hvac', True, ccs2)
        try:
            response = await self._tokens.send_with_retry(HTTP_GET, url, self._read_mode)
            if response.status == HTTP_FORBIDDEN and SPA_V2 in url:
                _LOGGER.debug(f'Reservation retrieval via control/reservation/hvac disallowed on SPA v2 for {vin} (403), retrying with SPA v1 base')
                v1_url = build_spa_vehicle_uri(ensure_spa_v1_base_url(self.base_url), vehicle_id, 'control/reservation/hvac', False)
                response = await self._tokens.send_with_retry(HTTP_GET, v1_url, self._read_mode)
            if response.status == HTTP_OK:
                return parse_reservation(response.body)
            _LOGGER.debug(f'Reservation retrieval via control/reservation/hvac failed for {vin}: {response.status}')
        except Exception as error:
            _LOGGER.debug(f'Reservation retrieval exception for {vin}: {error}')
        return None
