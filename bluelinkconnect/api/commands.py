#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Vehicle commands: request descriptions, payloads and dispatch."""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Optional
import copy
import json
import logging

from bluelinkconnect.api.models import JsonResponse, Reservation, VehicleCommandResponse
from bluelinkconnect.api.router import (
    EndpointRouter,
    build_control_uri,
    build_remote_door_uri,
    build_spa_vehicle_uri,
    ensure_spa_v1_base_url,
)
from bluelinkconnect.api.token import AuthorizationMode, TokenManager
from bluelinkconnect.const import (
    SPA_V1,
    SPA_V2,
    CCS2_PREFIX,
    CLIMATE_DEFAULT_TEMP,
    TEMP_CODE_DEFAULT,
    TEMP_UNIT,
    IGNITION_DURATION,
    DRIVER_SEAT,
)
from bluelinkconnect.exceptions import BlueLinkConfigException, BlueLinkRequestException
from bluelinkconnect.helpers.extract import opt_string
from bluelinkconnect.strings.globals import (
    ACTION,
    COMMAND,
    CONTROL_TOKEN,
    DEVICE_ID,
    DOOR_CLOSE,
    DOOR_OPEN,
    START,
    STOP,
    LOCK,
    UNLOCK,
    START_CHARGE,
    STOP_CHARGE,
    SET_CHARGE_LIMIT,
    SET_RESERVATION,
    UNKNOWN_VIN,
)
from bluelinkconnect.strings.http import HTTP_POST, HTTP_FORBIDDEN

_LOGGER = logging.getLogger(__name__)

REMOTE_DOOR_SEGMENT = 'ccs2/remote/door'
RESERVATION_SUFFIX = 'control/reservation/hvac'


@dataclass(frozen=True)
class VehicleCommandRequest:
    """Where a command is sent and what it carries on SPA v1 and v2."""

    control_segment_v1: Optional[str] = None
    ccs2_suffix: Optional[str] = None
    v1_payload: Optional[dict] = field(default=None, repr=False)
    v2_payload: Optional[dict] = field(default=None, repr=False)
    remote_door: bool = False
    remote_door_action: Optional[str] = None

    @classmethod
    def for_v1_only(cls, control_segment: str, payload: dict) -> VehicleCommandRequest:
        return cls(control_segment, control_segment, payload, payload)

    @classmethod
    def for_v1_and_v2(cls, segment_v1: str, suffix_v2: str, payload_v1: dict, payload_v2: dict) -> VehicleCommandRequest:
        return cls(segment_v1, suffix_v2, payload_v1, payload_v2)

    @classmethod
    def for_control_segment(cls, control_segment: str, payload: dict) -> VehicleCommandRequest:
        return cls.for_v1_only(control_segment, payload)

    @classmethod
    def for_remote_door(cls, action: Optional[str]) -> VehicleCommandRequest:
        return cls(None, REMOTE_DOOR_SEGMENT, None, None, True, action)

    def get_payload(self: VehicleCommandRequest, base_url: str, device_id: Optional[str], ccs2: bool = False) -> Optional[dict]:
        """Body for the SPA version the base URL names."""
        is_v1 = SPA_V1 in base_url.lower()
        if self.remote_door:
            if self.remote_door_action is None:
                return {}
            if is_v1:
                payload = {ACTION: self.remote_door_action}
                if device_id and device_id.strip():
                    payload[DEVICE_ID] = device_id
                return payload
            payload = {COMMAND: self.remote_door_action}
            if not ccs2:
                payload[ACTION] = self.remote_door_action
            return payload

        payload = self.v1_payload if is_v1 else self.v2_payload
        if not is_v1 and payload is not None and not ccs2:
            # Plain v2 endpoints expect action next to command
            if COMMAND in payload and ACTION not in payload:
                payload = copy.deepcopy(payload)
                payload[ACTION] = payload[COMMAND]
        return payload

    def build_uri(self: VehicleCommandRequest, base_url: str, vehicle_id: str, ccs2: bool = False) -> str:
        if self.remote_door:
            return build_remote_door_uri(base_url, vehicle_id)
        if SPA_V1 in base_url.lower():
            return build_control_uri(base_url, vehicle_id, self.control_segment_v1)
        suffix = self.ccs2_suffix
        if '/' not in suffix:
            suffix = 'control/' + suffix
        if ccs2 and not suffix.startswith(CCS2_PREFIX):
            suffix = CCS2_PREFIX + suffix
        return build_spa_vehicle_uri(base_url, vehicle_id, suffix, True)

    def requires_ccsp_token(self: VehicleCommandRequest, is_v1: bool, ccs2: bool) -> bool:
        """Whether the control token goes on the Authorization header."""
        if is_v1:
            return False
        if self.remote_door or ccs2:
            return True
        return bool(self.ccs2_suffix and self.ccs2_suffix.startswith(CCS2_PREFIX))

    def log_segment(self: VehicleCommandRequest, ccs2: bool = False) -> str:
        if self.remote_door:
            return REMOTE_DOOR_SEGMENT
        segment = self.ccs2_suffix or self.control_segment_v1
        if ccs2 and segment is not None and not segment.startswith(CCS2_PREFIX):
            return CCS2_PREFIX + segment
        return segment if segment is not None else 'null'


@dataclass
class ClimateOptions:
    """Climate start settings, None temperature keeps the vehicle default."""
    temperature: Optional[float] = None
    defrost: bool = False
    heating: bool = False
    steering_wheel: bool = False
    side_mirror: bool = False
    rear_window: bool = False


def _temp_code(temperature: Optional[float]) -> str:
    if temperature is None:
        return TEMP_CODE_DEFAULT
    return f'{int(temperature):02X}H'


def _with_device_id(payload: dict, device_id: Optional[str]) -> dict:
    if device_id and device_id.strip():
        payload[DEVICE_ID] = device_id
    return payload


def charge_payload(action: str, control_token: str, device_id: Optional[str]) -> dict:
    return _with_device_id({ACTION: action, CONTROL_TOKEN: control_token}, device_id)


def charge_limit_payload(limit_ac: int, limit_dc: int, control_token: str, device_id: Optional[str]) -> dict:
    """Charge limits in percent, -1 leaves a side unchanged."""
    payload = {
        CONTROL_TOKEN: control_token,
        'chargingLimitAC': limit_ac,
        'chargingLimitDC': limit_dc,
    }
    return _with_device_id(payload, device_id)


def v1_climate_payload(action: str, control_token: str, device_id: Optional[str], options: Optional[ClimateOptions] = None) -> dict:
    options = options or ClimateOptions()
    payload = {
        ACTION: action,
        CONTROL_TOKEN: control_token,
        'hvacType': 0,
        'options': {
            'defrost': options.defrost,
            'heating1': int(options.heating),
            'heatingSteeringWheel': int(options.steering_wheel),
            'heatingSideMirror': int(options.side_mirror),
            'heatingRearWindow': int(options.rear_window),
        },
    }
    if options.temperature is not None:
        payload['airTemp'] = f'{options.temperature:.1f}'
    payload['tempCode'] = _temp_code(options.temperature)
    payload['unit'] = TEMP_UNIT
    return _with_device_id(payload, device_id)


def v2_climate_payload(command: str, options: Optional[ClimateOptions] = None) -> dict:
    options = options or ClimateOptions()
    payload = {COMMAND: command, ACTION: command}
    if options.temperature is not None:
        payload['temp'] = options.temperature
    payload.update({
        'defrost': options.defrost,
        'steeringWheel': options.steering_wheel,
        'sideMirror': options.side_mirror,
        'rearWindow': options.rear_window,
    })
    if command == START:
        payload.update({
            'ignitionDuration': IGNITION_DURATION,
            'strgWhlHeating': int(options.steering_wheel),
            'sideRearMirrorHeating': int(options.side_mirror),
            'windshieldFrontDefogState': int(options.defrost),
            'hvacTempType': 1,
            'hvacTemp': f'{options.temperature:.1f}' if options.temperature is not None else CLIMATE_DEFAULT_TEMP,
            'tempCode': _temp_code(options.temperature),
            'tempUnit': TEMP_UNIT,
            'unit': TEMP_UNIT,
            'drvSeatLoc': DRIVER_SEAT,
        })
    else:
        payload['hvacType'] = 1
        payload['drvSeatLoc'] = DRIVER_SEAT
    return payload


def reservation_payload(reservation: Reservation, control_token: str, device_id: Optional[str]) -> dict:
    """Departure schedule in slot 0, every weekday enabled."""
    time = {'hour': reservation.hour, 'minute': reservation.minute}
    payload = _with_device_id({CONTROL_TOKEN: control_token}, device_id)
    payload['reservation'] = {
        'reservations': {'id': 1, 'active': reservation.active, 'endTime': dict(time)},
        'defrost': reservation.defrost,
    }
    payload['reservations'] = {
        'arrival': True,
        'fatc': {'defrost': reservation.defrost, 'tempCode': TEMP_CODE_DEFAULT, 'unit': TEMP_UNIT},
        'precondition': {
            'schedule': [{'id': 0, 'active': reservation.active, 'time': dict(time), 'day': [True] * 7}],
        },
    }
    return payload


def _vin(vin: Optional[str]) -> str:
    return vin if vin and vin.strip() else UNKNOWN_VIN


class CommandDispatcher:
    """Builds and sends vehicle commands."""

    def __init__(self: CommandDispatcher, token_manager: TokenManager, router: EndpointRouter) -> None:
        self._tokens = token_manager
        self._router = router

    @property
    def base_url(self: CommandDispatcher) -> str:
        return self._tokens.endpoints.base_url

    async def _control_token(self: CommandDispatcher, action: str) -> str:
        try:
            return await self._tokens.ensure_control_token()
        except BlueLinkConfigException as error:
            raise BlueLinkConfigException(
                f"Vehicle command '{action}' requires a configured PIN for control token exchange"
            ) from error

  # Commands
    async def lock(self: CommandDispatcher, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> VehicleCommandResponse:
        await self._control_token(LOCK)
        return await self.send_vehicle_command(vehicle_id, vin, LOCK, VehicleCommandRequest.for_remote_door(DOOR_CLOSE), ccs2)

    async def unlock(self: CommandDispatcher, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> VehicleCommandResponse:
        await self._control_token(UNLOCK)
        return await self.send_vehicle_command(vehicle_id, vin, UNLOCK, VehicleCommandRequest.for_remote_door(DOOR_OPEN), ccs2)

    async def start(
        self: CommandDispatcher,
        vehicle_id: str,
        vin: Optional[str],
        options: Optional[ClimateOptions] = None,
        ccs2: bool = False,
    ) -> VehicleCommandResponse:
        """Start climate control, with the vehicle defaults when no options are given."""
        control_token = await self._control_token(START)
        request = VehicleCommandRequest.for_v1_and_v2(
            'temperature',
            'control/temperature',
            v1_climate_payload(START, control_token, self._tokens.device_id, options),
            v2_climate_payload(START, options),
        )
        return await self.send_vehicle_command(vehicle_id, vin, START, request, ccs2)

    async def stop(self: CommandDispatcher, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> VehicleCommandResponse:
        control_token = await self._control_token(STOP)
        request = VehicleCommandRequest.for_v1_and_v2(
            'temperature',
            'control/temperature',
            v1_climate_payload(STOP, control_token, self._tokens.device_id),
            v2_climate_payload(STOP),
        )
        return await self.send_vehicle_command(vehicle_id, vin, STOP, request, ccs2)

    async def set_target_temperature(
        self: CommandDispatcher,
        vehicle_id: str,
        vin: Optional[str],
        temperature: float,
        options: Optional[ClimateOptions] = None,
        ccs2: bool = False,
    ) -> VehicleCommandResponse:
        """Start climate control at the given temperature, other settings taken from options."""
        options = replace(options or ClimateOptions(), temperature=float(temperature))
        return await self.start(vehicle_id, vin, options, ccs2)

    async def start_charge(self: CommandDispatcher, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> VehicleCommandResponse:
        control_token = await self._control_token(START_CHARGE)
        request = VehicleCommandRequest.for_v1_only('charge', charge_payload(START, control_token, self._tokens.device_id))
        return await self.send_vehicle_command(vehicle_id, vin, START_CHARGE, request, ccs2)

    async def stop_charge(self: CommandDispatcher, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> VehicleCommandResponse:
        control_token = await self._control_token(STOP_CHARGE)
        request = VehicleCommandRequest.for_control_segment('charge', charge_payload(STOP, control_token, self._tokens.device_id))
        return await self.send_vehicle_command(vehicle_id, vin, STOP_CHARGE, request, ccs2)

    async def set_charge_limit(
        self: CommandDispatcher,
        vehicle_id: str,
        vin: Optional[str],
        limit_ac: int,
        limit_dc: int,
        ccs2: bool = False,
    ) -> VehicleCommandResponse:
        control_token = await self._control_token(SET_CHARGE_LIMIT)
        request = VehicleCommandRequest.for_control_segment(
            'charge', charge_limit_payload(limit_ac, limit_dc, control_token, self._tokens.device_id)
        )
        return await self.send_vehicle_command(vehicle_id, vin, SET_CHARGE_LIMIT, request, ccs2)

    async def get_reservation(self: CommandDispatcher, vehicle_id: str, vin: Optional[str], ccs2: bool = False) -> Optional[Reservation]:
        return await self._router.get_reservation(vehicle_id, vin, ccs2)

    async def set_reservation(
        self: CommandDispatcher,
        vehicle_id: str,
        vin: Optional[str],
        reservation: Reservation,
        ccs2: bool = False,
    ) -> VehicleCommandResponse:
        """Store a departure reservation."""
        control_token = await self._control_token(SET_RESERVATION)
        payload = reservation_payload(reservation, control_token, self._tokens.device_id)
        url = build_spa_vehicle_uri(self.base_url, vehicle_id, RESERVATION_SUFFIX, True, ccs2)
        response = await self._tokens.send_with_retry(HTTP_POST, url, AuthorizationMode.CONTROL_TOKEN, payload=payload)
        if response.status == HTTP_FORBIDDEN and SPA_V2 in url:
            _LOGGER.debug(f'Set reservation disallowed on SPA v2 for {_vin(vin)} (403), retrying with SPA v1 base')
            v1_url = build_spa_vehicle_uri(ensure_spa_v1_base_url(self.base_url), vehicle_id, RESERVATION_SUFFIX, False, ccs2)
            response = await self._tokens.send_with_retry(HTTP_POST, v1_url, AuthorizationMode.CONTROL_TOKEN, payload=payload)
        if not response.ok:
            _LOGGER.warning(f'Set reservation failed for {_vin(vin)}: {response.status} {response.body_for_log}')
            raise BlueLinkRequestException(f'Set reservation failed: {response.status}', response.status)
        request = VehicleCommandRequest.for_control_segment('reservation', payload)
        return self._command_response(request, response, SET_RESERVATION, ccs2)

  # Dispatch
    async def send_vehicle_command(
        self: CommandDispatcher,
        vehicle_id: str,
        vin: Optional[str],
        action: str,
        request: VehicleCommandRequest,
        ccs2: bool = False,
    ) -> VehicleCommandResponse:
        """
        POST a command, retrying once against SPA v1 when SPA v2 answers 403.

        Arguments:
            vehicle_id: vehicle id from the vehicle list
            vin: VIN used for logging
            action: command name, used in logs and errors
            request: endpoint and payload description
            ccs2: vehicle supports the CCS2 protocol
        Returns:
            VehicleCommandResponse, with a message id when the command must be polled
        """
        vin = _vin(vin)
        url = request.build_uri(self.base_url, vehicle_id, ccs2)
        payload = request.get_payload(self.base_url, self._tokens.device_id, ccs2)
        mode = self._mode(request, SPA_V1 in url.lower(), ccs2)
        response = await self._tokens.send_with_retry(HTTP_POST, url, mode, payload=payload if payload is not None else {})

        if response.status == HTTP_FORBIDDEN and SPA_V2 in url:
            _LOGGER.debug(f'{action} command disallowed on SPA v2 for {vin} (403), retrying with SPA v1 base')
            v1_base = ensure_spa_v1_base_url(self.base_url)
            url = request.build_uri(v1_base, vehicle_id, ccs2)
            payload = request.get_payload(v1_base, self._tokens.device_id)
            mode = self._mode(request, True, ccs2)
            response = await self._tokens.send_with_retry(HTTP_POST, url, mode, payload=payload if payload is not None else {})

        if not response.ok:
            _LOGGER.warning(f'{action} command failed for {vin}: {response.status} {response.body_for_log}')
            raise BlueLinkRequestException(f'{action} command failed: {response.status}', response.status)
        _LOGGER.debug(f'{action} command accepted for {vin} via {request.log_segment(ccs2)}')
        return self._command_response(request, response, action, ccs2)

    @staticmethod
    def _mode(request: VehicleCommandRequest, is_v1: bool, ccs2: bool) -> AuthorizationMode:
        if request.requires_ccsp_token(is_v1, ccs2):
            return AuthorizationMode.CONTROL_TOKEN_CCSP
        return AuthorizationMode.CONTROL_TOKEN

    @staticmethod
    def _command_response(request: VehicleCommandRequest, response: JsonResponse, action: str, ccs2: bool) -> VehicleCommandResponse:
        segment = request.log_segment(ccs2)
        body = None
        message_id = None
        if response.body and response.body.strip():
            try:
                body = json.loads(response.body)
            except ValueError as error:
                _LOGGER.debug(f'Failed to parse command response for {action}: {error}')
            if isinstance(body, dict):
                message_id = opt_string(body, 'msgId', 'messageId', 'requestId', 'id')
            else:
                body = None
        return VehicleCommandResponse(segment, action, message_id, body, request.remote_door, request.remote_door_action)
