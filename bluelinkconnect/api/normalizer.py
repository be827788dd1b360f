#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Normalization of vehicle status, location, reservation and vehicle list payloads.

Backends wrap the interesting object in a varying number of envelopes and
name the same value differently per vehicle generation. Envelopes are
peeled off to a fixed point, then every field is looked up through an
ordered list of alias rules. A rule names the aliases, the scopes it is
evaluated in (the unwrapped object, the root document and the evStatus
object) and the coercion used. The first rule that yields a value wins.
A field that cannot be read stays None, nothing here raises for a field.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
import json
import logging
import math

from bluelinkconnect.api.models import (
    DistanceMeasurement,
    Reservation,
    VehicleLocation,
    VehicleStatus,
    VehicleSummary,
    is_valid_location,
)
from bluelinkconnect.exceptions import BlueLinkException
from bluelinkconnect.helpers.extract import (
    display_value,
    extract_boolean,
    extract_distance,
    extract_distance_recursive,
    extract_integer,
    first_boolean,
    first_distance,
    first_integer,
    first_object,
    is_number,
    opt_boolean,
    opt_double,
    opt_integer,
    opt_string,
    opt_timestamp,
    prefer_distance,
)
from bluelinkconnect.strings.globals import EV_STATUS

_LOGGER = logging.getLogger(__name__)

# Envelope keys, each group is tried in order on every pass
STATUS_ENVELOPES = [
    ('resMsg', 'payload', 'body', 'response', 'data'),
    ('vehicleStatus', 'vehicleStatusInfo', 'vehicleStatusDetail'),
    ('state', 'vehicle'),
    ('Vehicle',),
]
LOCATION_ENVELOPES = [
    ('resMsg', 'payload', 'body', 'response', 'data'),
    ('vehicleLocation', 'location', 'lastKnownPosition', 'coord', 'pos'),
    ('vehicleStatus', 'vehicleStatusInfo', 'vehicleStatusDetail'),
    ('gpsDetail', 'gpsDetails', 'gpsInfo'),
    ('coord', 'coordinates', 'coordinate', 'position'),
]
VEHICLE_LIST_WRAPPERS = ('resMsg', 'payload', 'body', 'response')
VEHICLE_LIST_KEYS = ('vehicles', 'data', 'result', 'items')
NOTIFICATION_LISTS = ('resMsg', 'messages', 'records')

LAST_UPDATED_FALLBACK = (
    'updateTime', 'updateDate', 'statusTime', 'lastStatusTime',
    'timeStamp', 'timestamp', 'time', 'eventTime', 'eventDate',
)
WARNING_KEYS = ('tailLampStatus', 'hazardStatus', 'systemCutOffAlert', 'sleepModeCheck', 'ign3', 'transCond')
EV_RANGE = ('evModeRange', 'evRange', 'electricRange', 'remainingEvRange', 'remainingEVRange', 'remainingEVrange')
GAS_RANGE = ('gasModeRange', 'fuelRange', 'fuelRangeKm', 'engineRange')
ODOMETER = ('odometerKm', 'Odometer', 'odometer', 'odo')
REMAIN_TIME = ('remainTime', 'remainingChargeTime', 'remainChargeTime', 'remainingTime')
REMAIN_OBJECT = ('remainTime', 'remainingChargeTime', 'remainChargeTime')

# Scopes an alias rule is evaluated in
UNWRAPPED = 'unwrapped'
ROOT = 'root'
EV = 'ev'


@dataclass(frozen=True)
class AliasRule:
    """Lookup of aliases with one coercion across scopes."""
    extract: Callable
    aliases: tuple = ()
    scopes: tuple = (UNWRAPPED, ROOT)

    def evaluate(self, scopes: dict):
        for scope in self.scopes:
            obj = scopes.get(scope)
            if obj is None:
                continue
            value = self.extract(obj, *self.aliases)
            if value is not None:
                return value
        return None


def _kilometers(obj, *keys) -> Optional[DistanceMeasurement]:
    value = opt_double(obj, *keys)
    return DistanceMeasurement.in_kilometers(value) if value is not None else None


def _nested_distance(child: str) -> Callable:
    def extract(obj, *keys):
        return extract_distance_recursive(obj.get(child), *keys)
    return extract


def _aux_battery(obj, *keys) -> Optional[float]:
    return opt_double(first_object(obj, 'battery'), *keys)


def _remain_object(obj, *keys) -> Optional[int]:
    remain = first_object(obj, *keys)
    if remain is None:
        return None
    minutes = first_integer(remain, 'total', 'value', 'minute', 'minutes')
    return minutes if minutes is not None else extract_integer(remain)


def _remain_time2(ev, *keys) -> Optional[int]:
    """Minutes to charge from remainTime2, picked by charging flag and plug type."""
    remain = first_object(ev, 'remainTime2')
    if remain is None:
        return None
    if first_boolean(ev, 'batteryCharge') is True:
        return first_integer(first_object(remain, 'atc'), 'value')
    plug_type = first_integer(ev, 'batteryPlugin')
    if plug_type is None or plug_type <= 0:
        return 0
    if plug_type == 1:
        estimate = first_object(remain, 'etc1')
    elif plug_type == 2:
        estimate = first_object(remain, 'etc2') or first_object(remain, 'etc3')
    else:
        estimate = first_object(remain, 'etc2')
    return first_integer(estimate, 'value')


def _plugged_in(ev, *keys) -> Optional[bool]:
    plugin = first_integer(ev, 'batteryPlugin')
    if plugin is None:
        return None
    if plugin > 0:
        return True
    if plugin == 0:
        return False
    return None


def _fastening_state(obj, *keys) -> Optional[bool]:
    state = first_integer(obj, *keys)
    return state != 0 if state is not None else None


def _connector_object(obj, *keys) -> Optional[bool]:
    connector = first_object(obj, *keys)
    if connector is None:
        return None
    fastened = first_boolean(connector, 'state', 'status', 'value', 'connected', 'fastened')
    if fastened is not None:
        return fastened
    return _fastening_state(connector, 'state', 'status', 'value')


def _object_state(obj, *keys) -> Optional[int]:
    return first_integer(first_object(obj, *keys), 'state', 'status', 'value')


def _range_from_ev(ev, *keys) -> Optional[DistanceMeasurement]:
    return range_from_ev_status(ev)


def _timestamp(obj, *keys) -> Optional[datetime]:
    return opt_timestamp(obj, *keys)


# Ordered rules per VehicleStatus field
FIELD_RULES = {
    'battery_level': [
        AliasRule(opt_double, ('batteryLevel',)),
        AliasRule(opt_double, ('batteryStatus', 'soc'), (EV,)),
    ],
    'auxiliary_battery_level': [
        AliasRule(_aux_battery, ('batSoc', 'auxBatteryLevel')),
    ],
    'range': [
        AliasRule(_kilometers, ('rangeKm',)),
        AliasRule(_range_from_ev, (), (EV,)),
    ],
    'ev_mode_range': [
        AliasRule(first_distance, EV_RANGE, (UNWRAPPED, ROOT, EV)),
        AliasRule(_nested_distance('rangeByFuel'), EV_RANGE, (EV,)),
        AliasRule(_nested_distance('drvDistance'), EV_RANGE, (EV,)),
    ],
    'gas_mode_range': [
        AliasRule(first_distance, GAS_RANGE, (UNWRAPPED, ROOT, EV)),
        AliasRule(_nested_distance('rangeByFuel'), GAS_RANGE, (EV,)),
        AliasRule(_nested_distance('drvDistance'), GAS_RANGE, (EV,)),
    ],
    'fuel_level': [
        AliasRule(opt_double, ('fuelLevel', 'fuelLevelPercent'), (UNWRAPPED, ROOT, EV)),
    ],
    'odometer': [
        AliasRule(_kilometers, ('odometerKm',)),
        AliasRule(_kilometers, ('Odometer',), (UNWRAPPED, ROOT, EV)),
        AliasRule(first_distance, ('odometer', 'odo'), (UNWRAPPED, ROOT, EV)),
        AliasRule(extract_distance_recursive, ODOMETER, (UNWRAPPED, ROOT, EV)),
    ],
    'remaining_charge_time_minutes': [
        AliasRule(first_integer, REMAIN_TIME),
        AliasRule(first_integer, (
            'remainTime', 'remainingChargeTime', 'remainChargeTime', 'remainChargeTime2',
            'remainingTime', 'chargeTime', 'chargingRemainingTime',
        ), (EV,)),
        AliasRule(_remain_object, REMAIN_OBJECT + ('chargeTime',), (EV,)),
        AliasRule(_remain_time2, (), (EV,)),
        AliasRule(_remain_object, REMAIN_OBJECT),
    ],
    'connector_fastened': [
        AliasRule(first_boolean, ('connectorFastened', 'connectorAttached')),
        AliasRule(first_boolean, (
            'connectorFastened', 'connectorAttached', 'connectorAttachedStatus',
            'connectorFastening', 'chargerConnected', 'chargingCableConnected',
        ), (EV,)),
        AliasRule(_plugged_in, (), (EV,)),
        AliasRule(_fastening_state, ('connectorFasteningState',), (UNWRAPPED, ROOT, EV)),
        AliasRule(_connector_object, ('connectorFastening', 'connector'), (UNWRAPPED, ROOT, EV)),
    ],
    'acc': [
        AliasRule(first_boolean, ('acc',)),
    ],
    'doors_locked': [
        AliasRule(first_boolean, ('doorsLocked', 'doorLock', 'doorLockStatus', 'doorLockState'), (UNWRAPPED, ROOT, EV)),
    ],
    'charging': [
        AliasRule(first_boolean, ('charging', 'isCharging', 'charge', 'chargeStatus', 'batteryCharge', 'chargingState')),
        AliasRule(first_boolean, (
            'batteryCharge', 'isCharging', 'charging', 'charge', 'chargeStatus',
            'evChargeStatus', 'chargerStatus', 'chargingState',
        ), (EV,)),
    ],
    'climate_on': [
        AliasRule(first_boolean, ('airCtrlOn', 'climateOn', 'airCondition', 'climateStatus')),
    ],
    'engine_on': [
        AliasRule(first_boolean, ('engine', 'engineOn', 'isEngineOn')),
    ],
    'trunk_open': [
        AliasRule(first_boolean, ('trunkOpen', 'trunkStatus')),
    ],
    'hood_open': [
        AliasRule(first_boolean, ('hoodOpen', 'hoodStatus')),
    ],
    'charging_state': [
        AliasRule(first_integer, ('chargingState', 'chargingStatus')),
        AliasRule(first_integer, (
            'chargingState', 'chargingStatus', 'chargeState', 'chargeStatus', 'evChargeStatus', 'chargerStatus',
        ), (EV,)),
        AliasRule(_object_state, ('charging', 'charger', 'charge'), (EV,)),
        AliasRule(_object_state, ('charging', 'charge')),
    ],
    'battery_warning': [
        AliasRule(first_boolean, ('batteryWarning', 'batteryWarningLamp', 'lowBatteryWarning')),
    ],
    'low_fuel_light': [
        AliasRule(first_boolean, ('lowFuelLight', 'lowFuelWarning', 'lowFuelIndicator'), (UNWRAPPED, ROOT, EV)),
    ],
    'last_updated': [
        AliasRule(_timestamp, ('lastUpdated',)),
        AliasRule(_timestamp, LAST_UPDATED_FALLBACK, (UNWRAPPED, ROOT, EV)),
    ],
}


def evaluate_rules(rules, scopes: dict):
    """Value of the first rule that yields one."""
    for rule in rules:
        value = rule.evaluate(scopes)
        if value is not None:
            return value
    return None


def load_json_object(body: str) -> dict:
    """Decode a response body that must be a JSON object."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as error:
        raise BlueLinkException(f'Response is not valid JSON: {error}') from error
    if not isinstance(data, dict):
        raise BlueLinkException('Response is not a JSON object')
    return data


def _unwrap(data, envelopes) -> Optional[dict]:
    if not isinstance(data, dict):
        return None
    current = data
    changed = True
    while changed:
        changed = False
        for keys in envelopes:
            inner = first_object(current, *keys)
            if inner is not None:
                current = inner
                changed = True
                break
    return current


def unwrap_vehicle_status(data) -> Optional[dict]:
    """Innermost status object below known envelopes."""
    return _unwrap(data, STATUS_ENVELOPES)


def unwrap_vehicle_location(data) -> Optional[dict]:
    """Innermost location object below known envelopes."""
    return _unwrap(data, LOCATION_ENVELOPES)


def _scopes(unwrapped: dict, root: dict) -> dict:
    ev_status = first_object(unwrapped, EV_STATUS)
    if ev_status is None and unwrapped is not root:
        ev_status = first_object(root, EV_STATUS)
    return {
        UNWRAPPED: unwrapped,
        ROOT: root if unwrapped is not root else None,
        EV: ev_status,
    }


def parse_vehicle_status(root: dict, vin: Optional[str] = None) -> VehicleStatus:
    """
    Build a VehicleStatus from a legacy status document.

    Arguments:
        root: decoded response body
        vin: VIN recorded on the result
    Returns:
        VehicleStatus, fields the document does not carry are None
    """
    status = VehicleStatus(vin=vin)
    unwrapped = unwrap_vehicle_status(root)
    if unwrapped is None:
        unwrapped = root
    scopes = _scopes(unwrapped, root)

    for field, rules in FIELD_RULES.items():
        try:
            value = evaluate_rules(rules, scopes)
        except (ArithmeticError, TypeError, ValueError) as error:
            _LOGGER.debug(f'Ignoring unreadable status field {field} for {vin}: {error}')
            continue
        if value is not None:
            setattr(status, field, value)

    # Derived values
    if status.charging_state is None and status.charging is not None:
        status.charging_state = 1 if status.charging else 0
    if status.last_updated is None:
        status.last_updated = datetime.now(timezone.utc)

    _parse_location(status, unwrapped, root)
    _parse_door_window_summaries(status, unwrapped, root)
    status.minor_warnings = _minor_warnings(unwrapped)
    _parse_charge_limits(status, scopes[EV])

    _LOGGER.debug(f'Vehicle status parsed for {vin}')
    return status


def range_from_ev_status(ev_status) -> Optional[DistanceMeasurement]:
    """Driving range from drvDistance, rangeByFuel, totalAvailableRange or dte."""
    if not isinstance(ev_status, dict):
        return None
    best = None
    drv_distance = ev_status.get('drvDistance')
    if isinstance(drv_distance, list):
        for entry in drv_distance:
            if isinstance(entry, dict):
                best = prefer_distance(best, _range_from_drv_entry(entry))
    elif isinstance(drv_distance, dict):
        best = prefer_distance(best, _range_from_drv_entry(drv_distance))
    elif drv_distance is not None:
        best = prefer_distance(best, range_from_range_by_fuel(drv_distance))
    if best is None:
        best = range_from_range_by_fuel(ev_status.get('rangeByFuel'))
    if best is None:
        best = extract_distance(ev_status.get('totalAvailableRange'))
    if best is None:
        best = extract_distance(ev_status.get('dte'))
    return best


def _range_from_drv_entry(entry: dict) -> Optional[DistanceMeasurement]:
    for candidate in (
        range_from_range_by_fuel(entry.get('rangeByFuel')),
        extract_distance(entry.get('totalAvailableRange')),
        extract_distance(entry.get('distance')),
    ):
        if candidate is not None:
            return candidate
    return None


def range_from_range_by_fuel(element) -> Optional[DistanceMeasurement]:
    if element is None:
        return None
    if isinstance(element, dict):
        for key in ('totalAvailableRange', 'evModeRange', 'distance'):
            candidate = extract_distance(element.get(key))
            if candidate is not None:
                return candidate
        best = None
        for key, value in element.items():
            if key.lower() in ('totalavailablerange', 'evmoderange', 'distance'):
                continue
            best = prefer_distance(best, range_from_range_by_fuel(value))
        return best
    if isinstance(element, list):
        best = None
        for child in element:
            best = prefer_distance(best, range_from_range_by_fuel(child))
        return best
    return extract_distance(element)


def _parse_location(status: VehicleStatus, unwrapped: dict, root: dict) -> None:
    location = parse_vehicle_location(unwrapped)
    if (location is None or not location.is_valid) and unwrapped is not root:
        location = parse_vehicle_location(root)
    if location is not None and location.is_valid:
        status.latitude = location.latitude
        status.longitude = location.longitude


def parse_vehicle_location(data) -> Optional[VehicleLocation]:
    """
    Find a usable coordinate pair in a document.

    Direct lat/lon aliases are tried first, then the unwrapped location
    envelope, then every nested object. A (0, 0) pair is not a fix.
    """
    if not isinstance(data, dict):
        return None
    lat = opt_double(data, 'lat', 'latitude', 'gpsLat')
    lon = opt_double(data, 'lon', 'longitude', 'gpsLon')
    lat = None if lat is None or math.isnan(lat) else lat
    lon = None if lon is None or math.isnan(lon) else lon

    if lat is None or lon is None:
        unwrapped = unwrap_vehicle_location(data)
        if unwrapped is not None and unwrapped is not data and 'lat' in unwrapped and 'lon' in unwrapped:
            inner_lat = opt_double(unwrapped, 'lat')
            inner_lon = opt_double(unwrapped, 'lon')
            if is_valid_location(inner_lat, inner_lon):
                return VehicleLocation(inner_lat, inner_lon)
        for value in data.values():
            if isinstance(value, dict):
                nested = parse_vehicle_location(value)
                if nested is not None:
                    return nested

    if is_valid_location(lat, lon):
        return VehicleLocation(lat, lon)
    return None


def _collect_door_status(unwrapped: dict, root: dict) -> Optional[dict]:
    """Door, door open, trunk and hood states merged into one position map."""
    merged = None
    for keys in (('doorStatus', 'doors', 'doorLockStatus'), ('doorOpen',)):
        doors = first_object(unwrapped, *keys)
        if doors is None and unwrapped is not root:
            doors = first_object(root, *keys)
        if doors is not None:
            merged = merged or {}
            merged.update(doors)
    for name, keys in (('trunk', ('trunkOpen', 'tailgateOpen', 'trunkStatus')), ('hood', ('hoodOpen', 'hoodStatus'))):
        value = first_boolean(unwrapped, *keys)
        if value is None and unwrapped is not root:
            value = first_boolean(root, *keys)
        if value is not None:
            merged = merged or {}
            merged[name] = value
    return merged


def _parse_door_window_summaries(status: VehicleStatus, unwrapped: dict, root: dict) -> None:
    doors = _collect_door_status(unwrapped, root)
    if doors is not None:
        status.door_status_summary = summarise_positions(doors)
    windows = first_object(unwrapped, 'windowStatus', 'windows')
    if windows is None and unwrapped is not root:
        windows = first_object(root, 'windowStatus', 'windows')
    if windows is not None:
        status.window_status_summary = summarise_positions(windows)


def summarise_positions(positions: dict) -> Optional[str]:
    """Render {"frontLeft": 0, ...} as "frontLeft=CLOSED, ..."."""
    parts = []
    for key, value in positions.items():
        state = status_value(value)
        if state is None:
            state = display_value(value)
        parts.append(f'{key}={state}')
    return ', '.join(parts) if parts else None


def status_value(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dict):
        for key in ('value', 'status'):
            if key in value:
                nested = status_value(value.get(key))
                if nested is not None:
                    return nested
        if 'open' in value:
            is_open = extract_boolean(value.get('open'))
            if is_open is not None:
                return 'OPEN' if is_open else 'CLOSED'
        return None
    if isinstance(value, bool):
        return 'OPEN' if value else 'CLOSED'
    if is_number(value):
        return 'OPEN' if value != 0 else 'CLOSED'
    if isinstance(value, str):
        return value
    return None


def _minor_warnings(unwrapped: dict) -> str:
    active = []
    for key in WARNING_KEYS:
        value = unwrapped.get(key)
        if isinstance(value, bool):
            raised = value
        elif is_number(value):
            raised = value != 0
        elif isinstance(value, str):
            raised = value != '0' and value.lower() != 'false'
        else:
            continue
        if raised:
            active.append(key)
    return ', '.join(active) if active else 'OK'


def _parse_charge_limits(status: VehicleStatus, ev_status: Optional[dict]) -> None:
    """Charge limits from evStatus.targetSOC, plug type 1 is AC and 2 is DC."""
    if ev_status is None:
        return
    target = ev_status.get('targetSOC')
    if isinstance(target, list):
        for entry in target:
            if not isinstance(entry, dict):
                continue
            plug_type = opt_integer(entry, 'plugType')
            level = opt_double(entry, 'targetSOClevel')
            if level is None or level <= 0:
                continue
            if plug_type == 1:
                status.charge_limit_ac = level
            elif plug_type == 2:
                status.charge_limit_dc = level
    elif isinstance(target, dict):
        ac_limit = opt_double(target, 'ac')
        if ac_limit is not None:
            status.charge_limit_ac = ac_limit
        dc_limit = opt_double(target, 'dc')
        if dc_limit is not None:
            status.charge_limit_dc = dc_limit


def parse_reservation(body: Optional[str]) -> Optional[Reservation]:
    """First precondition schedule of a reservation document, None when absent."""
    if not body or not body.strip():
        return None
    try:
        root = json.loads(body)
        if not isinstance(root, dict):
            return None
        reservations = root.get('reservations')
        if not isinstance(reservations, dict):
            return None
        schedule = (reservations.get('precondition') or {}).get('schedule')
        if not isinstance(schedule, list) or not schedule or not isinstance(schedule[0], dict):
            return None
        item = schedule[0]
        time = item.get('time') if isinstance(item.get('time'), dict) else {}
        return Reservation(
            active=opt_boolean(item, 'active', False),
            hour=opt_integer(time, 'hour') or 0,
            minute=opt_integer(time, 'minute') or 0,
            defrost=opt_boolean(reservations.get('fatc'), 'defrost', False),
        )
    except (AttributeError, TypeError, ValueError) as error:
        _LOGGER.warning(f'Failed to parse reservation response: {error}')
        return None


def extract_vehicle_array(data) -> Optional[list]:
    """Vehicle list below known wrappers, None when there is none."""
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return None
    for wrapper in VEHICLE_LIST_WRAPPERS:
        if data.get(wrapper) is None:
            continue
        nested = extract_vehicle_array(data.get(wrapper))
        if nested is not None:
            return nested
    for key in VEHICLE_LIST_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            return value
        if isinstance(value, dict):
            nested = extract_vehicle_array(value)
            if nested is not None:
                return nested
    return None


def parse_vehicle_summaries(data) -> list:
    """VehicleSummary per usable entry, entries without VIN or id are skipped."""
    vehicles = extract_vehicle_array(data)
    if vehicles is None:
        _LOGGER.debug('Vehicle list response did not contain any entries')
        return []
    results = []
    for entry in vehicles:
        if not isinstance(entry, dict):
            continue
        vehicle_id = opt_string(entry, 'vehicleId', 'id', 'vehicleKey', 'vehicleIdHash') or ''
        vin = opt_string(entry, 'vin', 'vehicleIdNumber', 'vinHash') or vehicle_id
        if not vin:
            continue
        summary = VehicleSummary(
            vehicle_id=vehicle_id,
            vin=vin,
            label=opt_string(entry, 'label', 'nickname', 'name', 'vehicleName'),
            model=opt_string(entry, 'model', 'vehicleModel', 'modelName'),
            model_year=opt_string(entry, 'modelYear', 'year', 'modelYearNm'),
            license_plate=opt_string(entry, 'licensePlate', 'plateNumber', 'plateNo'),
            type=opt_string(entry, 'type'),
        )
        detail = first_object(entry, 'detailInfo')
        if detail is not None:
            summary.in_color = opt_string(detail, 'inColor', 'interiorColor', 'incolorNm')
            summary.out_color = opt_string(detail, 'outColor', 'exteriorColor', 'outcolorNm')
            summary.sale_carmdl_cd = opt_string(detail, 'saleCarmdlCd')
            summary.body_type = opt_string(detail, 'bodyType', 'bodyTypeNm')
            summary.sale_carmdl_en_nm = opt_string(detail, 'saleCarmdlEnNm')
            summary.protocol_type = opt_string(detail, 'protocolType')
        if not summary.protocol_type:
            summary.protocol_type = opt_string(entry, 'protocolType')
        summary.ccu_ccs2_protocol_support = opt_string(entry, 'ccuCCS2ProtocolSupport')
        if not summary.label:
            summary.label = summary.model or summary.vin
        results.append(summary)
    _LOGGER.debug(f'Vehicle list retrieved {len(results)} entries')
    return results


def notification_records(data) -> Optional[list]:
    """Records array of the notifications feed."""
    if not isinstance(data, dict):
        return None
    for key in NOTIFICATION_LISTS:
        if isinstance(data.get(key), list):
            return data.get(key)
    return None


def find_notification_result(records: list, message_id: str) -> Optional[str]:
    """
    Result of the record matching message_id.

    Returns:
        '' when the record exists without a result, None when no record matches
    """
    for record in records:
        if not isinstance(record, dict):
            continue
        record_id = _record_text(record, 'recordId', 'messageId')
        if record_id == message_id:
            return _record_text(record, 'result', 'status')
    return None


def _record_text(record: dict, *keys) -> str:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return display_value(value)
    return ''


def latest_notification_text(records: list) -> Optional[str]:
    """"title: content" of the first record that has either."""
    for record in records:
        if not isinstance(record, dict):
            continue
        title = opt_string(record, 'title', 'messageTitle')
        content = opt_string(record, 'content', 'message', 'body', 'messageBody', 'text')
        text = ': '.join(part for part in (title, content) if part and part.strip())
        if text:
            return text
    return None
