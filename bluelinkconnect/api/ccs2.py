#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Mapping of the CCS2 carstatus document into VehicleStatus."""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
import logging
import math

from bluelinkconnect.api.models import DistanceMeasurement, VehicleStatus
from bluelinkconnect.helpers.extract import BASIC_TIMESTAMP, is_number

_LOGGER = logging.getLogger(__name__)

DOORS = [
    ('Front Left', 'Cabin.Door.Row1.Driver'),
    ('Front Right', 'Cabin.Door.Row1.Passenger'),
    ('Rear Left', 'Cabin.Door.Row2.Left'),
    ('Rear Right', 'Cabin.Door.Row2.Right'),
]
BODY_OPENINGS = [
    ('Trunk', 'Body.Trunk.Open'),
    ('Hood', 'Body.Hood.Open'),
]
WINDOWS = [
    ('Front Left', 'Cabin.Window.Row1.Driver.Open'),
    ('Front Right', 'Cabin.Window.Row1.Passenger.Open'),
    ('Rear Left', 'Cabin.Window.Row2.Left.Open'),
    ('Rear Right', 'Cabin.Window.Row2.Right.Open'),
    ('Sunroof', 'Body.Sunroof.Glass.Open'),
]
TIRES = [
    ('Front Left', 'Chassis.Axle.Row1.Left.Tire.PressureLow'),
    ('Front Right', 'Chassis.Axle.Row1.Right.Tire.PressureLow'),
    ('Rear Left', 'Chassis.Axle.Row2.Left.Tire.PressureLow'),
    ('Rear Right', 'Chassis.Axle.Row2.Right.Tire.PressureLow'),
]


def get_path(data, path: str):
    """Value at a dotted path, None when any step is missing."""
    current = data
    for part in path.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _double(data, path: str) -> Optional[float]:
    value = get_path(data, path)
    if isinstance(value, bool):
        return None
    if is_number(value):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _boolean(data, path: str) -> Optional[bool]:
    value = get_path(data, path)
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    return None


def _open_parts(data, parts) -> list:
    return [name for name, path in parts if _boolean(data, path)]


def map_ccs2_status(vin: Optional[str], ccs2: dict) -> VehicleStatus:
    """
    Build a VehicleStatus from a CCS2 carstatus document.

    Arguments:
        vin: VIN recorded on the result
        ccs2: unwrapped carstatus object (the one holding Drivetrain, Green, Cabin...)
    Returns:
        VehicleStatus
    """
    status = VehicleStatus(vin=vin)

    odometer = _double(ccs2, 'Drivetrain.Odometer')
    if odometer is not None:
        status.odometer = DistanceMeasurement.in_kilometers(odometer)
    status.fuel_level = _double(ccs2, 'Drivetrain.FuelSystem.FuelLevel')

    # Range, the charging target reading wins over the drivetrain total
    for path in ('Drivetrain.FuelSystem.DTE.Total', 'Green.ChargingInformation.DTE.TargetSoC.Standard'):
        distance = _double(ccs2, path)
        if distance is not None:
            status.range = DistanceMeasurement.in_kilometers(distance)
            status.ev_mode_range = DistanceMeasurement.in_kilometers(distance)

    status.charge_limit_ac = _double(ccs2, 'Green.ChargingInformation.TargetSoC.Standard')
    status.charge_limit_dc = _double(ccs2, 'Green.ChargingInformation.TargetSoC.Quick')
    status.auxiliary_battery_level = _double(ccs2, 'Electronics.Battery.Level')
    status.battery_level = _double(ccs2, 'Green.BatteryManagement.BatteryRemain.Ratio')
    status.acc = _boolean(ccs2, 'DrivingReady')

    if _double(ccs2, 'Cabin.HVAC.Row1.Driver.Temperature.Value') is not None:
        status.climate_on = True
    elif get_path(ccs2, 'Cabin.HVAC.Row1.Driver.Temperature.Value') == 'OFF':
        status.climate_on = False

    locks = [_boolean(ccs2, f'{path}.Lock') for _, path in DOORS]
    if all(lock is not None for lock in locks):
        status.doors_locked = all(locks)

    open_doors = [name for name, path in DOORS if _boolean(ccs2, f'{path}.Open')]
    open_doors += _open_parts(ccs2, BODY_OPENINGS)
    status.door_status_summary = ', '.join(open_doors) if open_doors else 'Closed'
    status.trunk_open = _boolean(ccs2, 'Body.Trunk.Open')
    status.hood_open = _boolean(ccs2, 'Body.Hood.Open')

    open_windows = _open_parts(ccs2, WINDOWS)
    status.window_status_summary = ', '.join(open_windows) if open_windows else 'Closed'

    status.connector_fastened = _boolean(ccs2, 'Green.ChargingInformation.ConnectorFastening.State')

    remain = _double(ccs2, 'Green.ChargingInformation.Charging.RemainTime')
    if remain is not None:
        if remain > 0:
            status.remaining_charge_time_minutes = int(remain)
            status.charging = True
            status.charging_state = 1
        elif remain == 0:
            status.remaining_charge_time_minutes = 0
            status.charging = False
            status.charging_state = 0

    low_tires = _open_parts(ccs2, TIRES)
    if low_tires:
        status.minor_warnings = 'Low Tire Pressure: ' + ', '.join(low_tires)

    latitude = _double(ccs2, 'Location.GeoCoord.Latitude')
    longitude = _double(ccs2, 'Location.GeoCoord.Longitude')
    if latitude and longitude:
        status.latitude = latitude
        status.longitude = longitude

    status.last_updated = _parse_date(ccs2.get('Date')) or datetime.now(timezone.utc)
    _LOGGER.debug(f'CCS2 status mapped for {vin}')
    return status


def _parse_date(value) -> Optional[datetime]:
    """Leading yyyyMMddHHmmss of the Date field, in UTC."""
    if not isinstance(value, str) or len(value) < 14:
        return None
    try:
        return datetime.strptime(value[:14], BASIC_TIMESTAMP).replace(tzinfo=timezone.utc)
    except ValueError:
        _LOGGER.debug(f'Unparsable CCS2 date {value}')
        return None
