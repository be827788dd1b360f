#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Data models returned by the BlueLink API layer."""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import json
import math


class DistanceUnit(Enum):
    KILOMETERS = 'km'
    MILES = 'mi'

    @classmethod
    def from_code(cls, code: Optional[int]) -> DistanceUnit:
        """Backend unit codes 0, 2 and 3 are miles, anything else kilometers."""
        if code in (0, 2, 3):
            return cls.MILES
        return cls.KILOMETERS


@dataclass
class DistanceMeasurement:
    value: float
    unit: DistanceUnit = DistanceUnit.KILOMETERS

    @classmethod
    def in_kilometers(cls, value: float) -> DistanceMeasurement:
        return cls(float(value), DistanceUnit.KILOMETERS)


@dataclass
class VehicleLocation:
    latitude: float = math.nan
    longitude: float = math.nan

    @property
    def is_valid(self) -> bool:
        """True for a real fix, a (0, 0) pair is what vehicles report without GPS."""
        return is_valid_location(self.latitude, self.longitude)


def is_valid_location(lat, lon) -> bool:
    if lat is None or lon is None:
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return lat != 0.0 or lon != 0.0


@dataclass
class Reservation:
    active: bool = False
    hour: int = 0
    minute: int = 0
    defrost: bool = False


@dataclass
class VehicleSummary:
    vehicle_id: str
    vin: str
    label: Optional[str] = None
    model: Optional[str] = None
    model_year: Optional[str] = None
    license_plate: Optional[str] = None
    type: Optional[str] = None
    protocol_type: Optional[str] = None
    ccu_ccs2_protocol_support: Optional[str] = None
    in_color: Optional[str] = None
    out_color: Optional[str] = None
    sale_carmdl_cd: Optional[str] = None
    body_type: Optional[str] = None
    sale_carmdl_en_nm: Optional[str] = None

    @property
    def ccs2_supported(self) -> bool:
        try:
            return int(self.ccu_ccs2_protocol_support or 0) != 0
        except ValueError:
            return False


@dataclass
class VehicleStatus:
    """Flattened vehicle snapshot. None means the backend did not report the value."""

    vin: Optional[str] = None
    doors_locked: Optional[bool] = None
    charging: Optional[bool] = None
    climate_on: Optional[bool] = None
    battery_warning: Optional[bool] = None
    acc: Optional[bool] = None
    engine_on: Optional[bool] = None
    trunk_open: Optional[bool] = None
    hood_open: Optional[bool] = None
    connector_fastened: Optional[bool] = None
    low_fuel_light: Optional[bool] = None
    battery_level: Optional[float] = None
    auxiliary_battery_level: Optional[float] = None
    fuel_level: Optional[float] = None
    charge_limit_ac: Optional[float] = None
    charge_limit_dc: Optional[float] = None
    charging_state: Optional[int] = None
    remaining_charge_time_minutes: Optional[int] = None
    odometer: Optional[DistanceMeasurement] = None
    range: Optional[DistanceMeasurement] = None
    ev_mode_range: Optional[DistanceMeasurement] = None
    gas_mode_range: Optional[DistanceMeasurement] = None
    door_status_summary: Optional[str] = None
    window_status_summary: Optional[str] = None
    minor_warnings: Optional[str] = None
    last_updated: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_notification: Optional[str] = None


@dataclass
class JsonResponse:
    """Raw response of a read endpoint, with a redacted copy of the body for logging."""

    status: int
    body: str
    body_for_log: str = ''

    @property
    def ok(self) -> bool:
        return self.status // 100 == 2

    def json(self):
        """Decoded body, None when the body is empty or not JSON."""
        if not self.body or not self.body.strip():
            return None
        try:
            return json.loads(self.body)
        except ValueError:
            return None


@dataclass
class VehicleCommandResponse:
    control_segment: str
    action: str
    message_id: Optional[str] = None
    body: Optional[dict] = field(default=None, repr=False)
    remote_door: bool = False
    remote_door_action: Optional[str] = None

    @property
    def is_async(self) -> bool:
        """Commands that return a message id finish later and must be polled."""
        return bool(self.message_id)
