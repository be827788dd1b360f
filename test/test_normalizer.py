"""Unit Tests for status, location and list normalization"""
from datetime import datetime, timezone
import json

import pytest

from bluelinkconnect.api.commands import reservation_payload
from bluelinkconnect.api.models import DistanceUnit, Reservation
from bluelinkconnect.api.normalizer import (
    FIELD_RULES,
    AliasRule,
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
from bluelinkconnect.exceptions import BlueLinkException

LEGACY_STATUS = {
    "resMsg": {
        "vehicleStatusInfo": {
            "vehicleStatus": {
                "doorLock": True,
                "airCtrlOn": False,
                "engine": False,
                "trunkOpen": False,
                "hoodOpen": False,
                "battery": {"batSoc": 81},
                "time": "20240102030405",
                "doorOpen": {"frontLeft": 0, "frontRight": 1},
                "evStatus": {
                    "batteryStatus": 55,
                    "batteryCharge": True,
                    "batteryPlugin": 1,
                    "remainTime2": {"atc": {"value": 45, "unit": 1}},
                    "drvDistance": [{"rangeByFuel": {"totalAvailableRange": {"value": 300, "unit": 1}}}],
                    "targetSOC": [
                        {"plugType": 1, "targetSOClevel": 80},
                        {"plugType": 2, "targetSOClevel": 90},
                    ],
                },
            },
            "odometer": {"value": 12345, "unit": 1},
        }
    }
}


def test_unwrap_to_fixed_point():
    unwrapped = unwrap_vehicle_status(LEGACY_STATUS)
    assert unwrapped["doorLock"] is True


def test_legacy_status_fields():
    status = parse_vehicle_status(LEGACY_STATUS, "KMH000001")
    assert status.vin == "KMH000001"
    assert status.doors_locked is True
    assert status.climate_on is False
    assert status.engine_on is False
    assert status.battery_level == 55.0
    assert status.auxiliary_battery_level == 81.0
    assert status.range.value == 300.0
    assert status.odometer.value == 12345.0
    assert status.remaining_charge_time_minutes == 45
    assert status.connector_fastened is True
    assert status.charging is True
    assert status.charging_state == 1
    assert status.charge_limit_ac == 80.0
    assert status.charge_limit_dc == 90.0
    assert status.door_status_summary == "frontLeft=CLOSED, frontRight=OPEN, trunk=CLOSED, hood=CLOSED"
    assert status.minor_warnings == "OK"
    assert status.last_updated == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert status.latitude is None


def test_range_unit_code_miles():
    root = {"evStatus": {"drvDistance": [{"rangeByFuel": {"totalAvailableRange": {"value": 150, "unit": 3}}}]}}
    status = parse_vehicle_status(root)
    assert status.range.value == 150.0
    assert status.range.unit == DistanceUnit.MILES


@pytest.mark.parametrize(
    "ev_status, minutes",
    [
        ({"batteryCharge": False, "batteryPlugin": 2, "remainTime2": {"etc2": {"value": 30}, "etc3": {"value": 60}}}, 30),
        ({"batteryCharge": False, "batteryPlugin": 2, "remainTime2": {"etc3": {"value": 60}}}, 60),
        ({"batteryCharge": False, "batteryPlugin": 1, "remainTime2": {"etc1": {"value": 400}}}, 400),
        ({"batteryCharge": False, "batteryPlugin": 0, "remainTime2": {"etc1": {"value": 400}}}, 0),
        ({"remainTime": {"hour": 2, "minute": 10}}, 130),
    ],
)
def test_remaining_charge_time(ev_status, minutes):
    status = parse_vehicle_status({"evStatus": ev_status})
    assert status.remaining_charge_time_minutes == minutes


def test_field_failures_are_not_fatal():
    status = parse_vehicle_status({"batteryLevel": "unknown", "doorLock": "jammed"})
    assert status.battery_level is None
    assert status.doors_locked is None
    assert status.last_updated is not None


def test_non_finite_numbers_are_unreadable():
    status = parse_vehicle_status(load_json_object('{"vehicleStatus": {"batteryLevel": 80, "chargingState": 1e999, "remainTime": "inf", "hazardStatus": 1e999}}'))
    assert status.battery_level == 80.0
    assert status.charging is None
    assert status.charging_state is None
    assert status.remaining_charge_time_minutes is None
    assert status.minor_warnings == "hazardStatus"


def test_failing_field_leaves_other_fields(monkeypatch):
    def broken(obj, *keys):
        raise OverflowError("cannot convert float infinity to integer")

    monkeypatch.setitem(FIELD_RULES, "engine_on", [AliasRule(broken, ("engine",))])
    status = parse_vehicle_status({"engine": True, "doorLock": True})
    assert status.engine_on is None
    assert status.doors_locked is True


def test_invalid_document_raises():
    with pytest.raises(BlueLinkException):
        load_json_object("<html>")
    with pytest.raises(BlueLinkException):
        load_json_object("[1, 2]")


def test_warnings_are_listed():
    status = parse_vehicle_status({"tailLampStatus": 1, "hazardStatus": "0", "sleepModeCheck": True})
    assert status.minor_warnings == "tailLampStatus, sleepModeCheck"


def test_location_from_gps_envelopes():
    location = parse_vehicle_location({"resMsg": {"gpsDetail": {"coord": {"lat": 52.1, "lon": 4.3}}}})
    assert location.latitude == 52.1
    assert location.longitude == 4.3


def test_location_zero_is_not_a_fix():
    assert parse_vehicle_location({"resMsg": {"coord": {"lat": 0, "lon": 0}}}) is None


def test_status_carries_location():
    status = parse_vehicle_status({"vehicleStatus": {"doorLock": False}, "vehicleLocation": {"coord": {"lat": 48.8, "lon": 2.3}}})
    assert status.latitude == 48.8
    assert status.longitude == 2.3


def test_reservation_round_trip():
    reservation = Reservation(active=True, hour=6, minute=45, defrost=True)
    body = json.dumps(reservation_payload(reservation, "control-1", "DEVICE-1"))
    assert parse_reservation(body) == reservation


def test_reservation_absent():
    assert parse_reservation("") is None
    assert parse_reservation('{"reservations": {}}') is None


def test_vehicle_summaries():
    data = {
        "resMsg": {
            "vehicles": [
                {"vehicleId": "id-1", "vin": "KMH000001", "nickname": "Kona", "ccuCCS2ProtocolSupport": 1},
                {"vehicleId": "id-2", "vin": "KMH000002", "vehicleName": "Ioniq", "detailInfo": {"protocolType": "1"}},
                {"unrelated": True},
            ]
        }
    }
    summaries = parse_vehicle_summaries(data)
    assert [summary.vin for summary in summaries] == ["KMH000001", "KMH000002"]
    assert summaries[0].label == "Kona"
    assert summaries[0].ccs2_supported is True
    assert summaries[1].ccs2_supported is False
    assert summaries[1].protocol_type == "1"


def test_notification_results():
    records = notification_records(
        {"resMsg": [
            {"recordId": "m-1", "result": "success", "title": "Door", "content": "Locked"},
            {"recordId": "m-2"},
        ]}
    )
    assert find_notification_result(records, "m-1") == "success"
    assert find_notification_result(records, "m-2") == ""
    assert find_notification_result(records, "m-3") is None
    assert latest_notification_text(records) == "Door: Locked"
