"""Unit Tests for endpoint selection and fallbacks"""
import math

import aiohttp
from aioresponses import aioresponses
import pytest
from yarl import URL

from bluelinkconnect.api.router import (
    CommandResult,
    EndpointRouter,
    build_control_uri,
    build_remote_door_uri,
    build_spa_vehicle_uri,
    ensure_spa_v1_base_url,
    ensure_spa_v2_base_url,
    should_fallback,
)
from bluelinkconnect.exceptions import (
    BlueLinkCommandFailedException,
    BlueLinkCommandTimeoutException,
    BlueLinkRequestException,
)

BASE_V1 = "https://api.example.com/api/v1/spa"
BASE_V2 = "https://api.example.com/api/v2/spa"
REGISTER_URL = "https://api.example.com/api/v1/spa/notifications/register"
NOTIFICATIONS_URL = f"{BASE_V1}/notifications/VID/records"
STATUS_URL = f"{BASE_V1}/vehicles/VID/status"
STATUS_LATEST_V1 = f"{BASE_V1}/vehicles/VID/status/latest"
DISALLOWED = '{"errMsg": "Access to this API has been disallowed for this account"}'
STATUS_BODY = {"resMsg": {"vehicleStatus": {"doorLock": True, "airCtrlOn": True}}}


def requests_to(mock: aioresponses, method: str, url: str) -> list:
    return mock.requests.get((method, URL(url)), [])


def test_spa_uri_round_trip():
    v2 = build_spa_vehicle_uri(BASE_V1, "VID", "status/latest", True)
    assert v2 == f"{BASE_V2}/vehicles/VID/status/latest"
    v1 = build_spa_vehicle_uri(ensure_spa_v1_base_url(v2.split("/vehicles")[0]), "VID", "status/latest", False)
    assert v1 == STATUS_LATEST_V1
    assert ensure_spa_v2_base_url(ensure_spa_v1_base_url(BASE_V2)) == BASE_V2


def test_spa_uri_variants():
    assert ensure_spa_v1_base_url("https://api.example.com/") == BASE_V1
    assert build_spa_vehicle_uri(BASE_V2, "VID", "location/latest", True, ccs2=True) == f"{BASE_V2}/vehicles/VID/ccs2/location/latest"
    assert build_spa_vehicle_uri(BASE_V2, "VID", "ccs2/carstatus/latest", True, ccs2=True) == f"{BASE_V2}/vehicles/VID/ccs2/carstatus/latest"
    assert build_control_uri(BASE_V1, "VID", "charge") == f"{BASE_V1}/vehicles/VID/control/charge"
    assert build_control_uri("https://api.example.com", "VID", "charge") == f"{BASE_V2}/vehicles/VID/control/charge"
    assert build_remote_door_uri(BASE_V2, "VID") == f"{BASE_V2}/vehicles/VID/ccs2/control/door"
    assert build_remote_door_uri(BASE_V1, "VID") == f"{BASE_V1}/vehicles/VID/control/door"
    with pytest.raises(ValueError):
        build_spa_vehicle_uri(" ", "VID", "status", True)


def test_should_fallback():
    assert should_fallback(404, None)
    assert should_fallback(500, "")
    assert should_fallback(409, DISALLOWED)
    assert not should_fallback(409, '{"errMsg": "conflict"}')


@pytest.mark.asyncio
async def test_post_unsupported_disables_post(response_mock: aioresponses, make_token_manager):
    response_mock.post(STATUS_URL, status=404)
    response_mock.get(STATUS_URL, payload=STATUS_BODY, repeat=True)
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": []}, repeat=True)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session, device_id="DEVICE-1"))
        status = await router.get_vehicle_status("VID", "KMH000001")
        assert status.doors_locked is True
        assert router.post_disabled is True
        await router.get_vehicle_status("VID", "KMH000001")
    assert len(requests_to(response_mock, "POST", STATUS_URL)) == 1
    assert len(requests_to(response_mock, "GET", STATUS_URL)) == 2


@pytest.mark.asyncio
async def test_post_bad_request_keeps_post(response_mock: aioresponses, make_token_manager):
    response_mock.post(STATUS_URL, status=400)
    response_mock.get(STATUS_URL, payload=STATUS_BODY)
    response_mock.get(NOTIFICATIONS_URL, status=500)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session, device_id="DEVICE-1"))
        status = await router.get_vehicle_status("VID", "KMH000001")
    assert status.climate_on is True
    assert status.last_notification is None
    assert router.post_disabled is False


@pytest.mark.asyncio
async def test_disabled_post_reads_with_get(response_mock: aioresponses, make_token_manager):
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": [{"title": "Climate", "content": "Started"}]})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session, device_id="DEVICE-1"))
        router.post_disabled = True
        response_mock.get(STATUS_URL, payload=STATUS_BODY)
        status = await router.get_vehicle_status("VID", "KMH000001")
    assert status.last_notification == "Climate: Started"
    assert len(requests_to(response_mock, "POST", STATUS_URL)) == 0
    assert router.post_disabled is True


@pytest.mark.asyncio
async def test_disallowed_falls_back_to_status_latest_once(response_mock: aioresponses, make_token_manager):
    response_mock.get(STATUS_URL, status=400, body=DISALLOWED)
    response_mock.get(STATUS_LATEST_V1, payload={"vehicleStatus": {"doorLock": False}})
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": []})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        status = await router.get_vehicle_status("VID", "KMH000001")
    assert status.doors_locked is False
    assert len(requests_to(response_mock, "GET", STATUS_LATEST_V1)) == 1


@pytest.mark.asyncio
async def test_status_failure_raises(response_mock: aioresponses, make_token_manager):
    response_mock.get(STATUS_URL, status=400, body=DISALLOWED)
    response_mock.get(STATUS_LATEST_V1, status=500)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        with pytest.raises(BlueLinkRequestException) as error:
            await router.get_vehicle_status("VID", "KMH000001")
    assert error.value.http_status == 400
    assert len(requests_to(response_mock, "GET", STATUS_LATEST_V1)) == 1


@pytest.mark.asyncio
async def test_ccs2_status_falls_back_to_legacy(response_mock: aioresponses, make_token_manager):
    response_mock.get(f"{BASE_V2}/vehicles/VID/ccs2/carstatus/latest", status=403, body=DISALLOWED)
    response_mock.get(STATUS_URL, payload=STATUS_BODY)
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": []})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        status = await router.get_vehicle_status("VID", "KMH000001", ccs2=True)
    assert status.doors_locked is True


@pytest.mark.asyncio
async def test_ccs2_status(response_mock: aioresponses, make_token_manager):
    response_mock.get(
        f"{BASE_V2}/vehicles/VID/ccs2/carstatus/latest",
        payload={"resMsg": {"state": {"Vehicle": {"Green": {"BatteryManagement": {"BatteryRemain": {"Ratio": 64}}}}}}},
    )
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": []})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        status = await router.get_vehicle_status("VID", "KMH000001", ccs2=True)
    assert status.battery_level == 64.0


@pytest.mark.asyncio
async def test_location_cascade(response_mock: aioresponses, make_token_manager):
    response_mock.get(f"{BASE_V2}/vehicles/VID/location/latest", status=404)
    response_mock.get(f"{BASE_V1}/vehicles/VID/location/latest", payload={"resMsg": {"coord": {"lat": 0, "lon": 0}}})
    response_mock.get(f"{BASE_V2}/vehicles/VID/ccs2/location/latest", payload={"resMsg": {"lat": 51.5, "lon": -0.12}})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        location = await router.get_vehicle_location("VID", "KMH000001")
    assert location.latitude == 51.5
    assert location.longitude == -0.12


@pytest.mark.asyncio
async def test_location_unavailable(response_mock: aioresponses, make_token_manager):
    response_mock.get(f"{BASE_V2}/vehicles/VID/location/latest", status=500)
    response_mock.get(f"{BASE_V2}/vehicles/VID/ccs2/location/latest", status=500)
    response_mock.get(f"{BASE_V2}/vehicles/VID/ccs2/carstatus/latest", status=500)
    response_mock.get(STATUS_LATEST_V1, status=500)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        location = await router.get_vehicle_location("VID", "KMH000001")
    assert math.isnan(location.latitude)
    assert not location.is_valid


@pytest.mark.asyncio
async def test_read_with_control_token_falls_back_to_access_token(response_mock: aioresponses, make_token_manager):
    url = f"{BASE_V2}/vehicles/VID/monthlyreportlist/latest"
    response_mock.get(url, status=403)
    response_mock.get(f"{BASE_V1}/vehicles/VID/monthlyreportlist/latest", status=403)
    response_mock.get(f"{BASE_V1}/vehicles/VID/monthlyreportlist/latest", payload={"resMsg": {"monthlyReport": []}})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, pin="1234", device_id="DEVICE-1")
        tokens.control_token = "control-1"
        tokens.control_token_expiry = None
        response_mock.put("https://api.example.com/api/v1/user/pin", payload={"controlToken": "control-2"})
        router = EndpointRouter(tokens)
        response = await router.get_vehicle_monthly_report_list("VID", "KMH000001")
    assert response.ok
    calls = requests_to(response_mock, "GET", f"{BASE_V1}/vehicles/VID/monthlyreportlist/latest")
    assert calls[0].kwargs["headers"]["ccsp-control-token"] == "control-2"
    assert "ccsp-control-token" not in calls[1].kwargs["headers"]


@pytest.mark.asyncio
async def test_list_vehicles_falls_back_to_v1(response_mock: aioresponses, make_token_manager):
    response_mock.post(REGISTER_URL, payload={"resMsg": {"deviceId": "DEVICE-2"}})
    response_mock.get(f"{BASE_V2}/vehicles", status=403)
    response_mock.get(f"{BASE_V1}/vehicles", payload={"resMsg": {"vehicles": [{"vehicleId": "VID", "vin": "KMH000001"}]}})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session, base_url=BASE_V2))
        vehicles = await router.list_vehicles()
    assert [vehicle.vehicle_id for vehicle in vehicles] == ["VID"]


@pytest.mark.asyncio
async def test_list_vehicles_failure(response_mock: aioresponses, make_token_manager):
    response_mock.post(REGISTER_URL, status=404)
    response_mock.get(f"{BASE_V1}/vehicles", status=500)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        with pytest.raises(BlueLinkRequestException):
            await router.list_vehicles()


@pytest.mark.asyncio
async def test_reservation_v2_forbidden_uses_v1(response_mock: aioresponses, make_token_manager):
    response_mock.get(f"{BASE_V2}/vehicles/VID/control/reservation/hvac", status=403)
    response_mock.get(
        f"{BASE_V1}/vehicles/VID/control/reservation/hvac",
        payload={"reservations": {"precondition": {"schedule": [{"active": True, "time": {"hour": 7, "minute": 30}}]}}},
    )
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        reservation = await router.get_reservation("VID", "KMH000001")
    assert reservation.active is True
    assert (reservation.hour, reservation.minute) == (7, 30)
    assert reservation.defrost is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "records, expected",
    [
        ([{"recordId": "m-1", "result": "success"}], CommandResult.SUCCESS),
        ([{"recordId": "m-1", "result": "FAIL"}], CommandResult.FAILED),
        ([{"recordId": "m-1", "result": "non-response"}], CommandResult.TIMED_OUT),
        ([{"recordId": "m-1"}], CommandResult.PENDING),
        ([{"recordId": "m-2", "result": "success"}], CommandResult.PENDING),
    ],
)
async def test_command_result_mapping(response_mock: aioresponses, make_token_manager, records, expected):
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": records})
    response_mock.post(REGISTER_URL, payload={"resMsg": {"deviceId": "DEVICE-2"}})
    async with aiohttp.ClientSession() as session:
        tokens = make_token_manager(session, device_id="DEVICE-1")
        router = EndpointRouter(tokens)
        assert await router.fetch_command_result("VID", "KMH000001", "m-1") is expected
    # Terminal results rotate the device
    rotated = expected is not CommandResult.PENDING
    assert (tokens.device_id == "DEVICE-2") is rotated


@pytest.mark.asyncio
async def test_feed_error_is_treated_as_success(response_mock: aioresponses, make_token_manager):
    # Heuristic: the backend drops the feed when it cannot push the result
    response_mock.get(NOTIFICATIONS_URL, status=500)
    response_mock.post(REGISTER_URL, status=500)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session, device_id="DEVICE-1"))
        assert await router.poll_vehicle_command_result("VID", "KMH000001", "m-1") is True


@pytest.mark.asyncio
async def test_poll_raises_for_terminal_failures(response_mock: aioresponses, make_token_manager):
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": [{"recordId": "m-1", "result": "fail"}]})
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": [{"recordId": "m-1", "result": "non-response"}]})
    response_mock.get(NOTIFICATIONS_URL, payload={"resMsg": []})
    response_mock.post(REGISTER_URL, status=404, repeat=True)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session, device_id="DEVICE-1"))
        with pytest.raises(BlueLinkCommandFailedException):
            await router.poll_vehicle_command_result("VID", "KMH000001", "m-1")
        with pytest.raises(BlueLinkCommandTimeoutException):
            await router.poll_vehicle_command_result("VID", "KMH000001", "m-1")
        assert await router.poll_vehicle_command_result("VID", "KMH000001", "m-1") is False


@pytest.mark.asyncio
async def test_monthly_report_cascade(response_mock: aioresponses, make_token_manager):
    response_mock.get(f"{BASE_V2}/vehicles/VID/monthlyreport/v2", status=404)
    response_mock.get(f"{BASE_V1}/vehicles/VID/monthlyreport/v2", status=404, repeat=True)
    response_mock.get(f"{BASE_V1}/vehicles/VID/monthlyreport", payload={"resMsg": {"driving": {"runDistance": 120}}})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        response = await router.get_vehicle_monthly_report("VID", "KMH000001")
    assert response.ok
    assert response.json()["resMsg"]["driving"]["runDistance"] == 120
    assert len(requests_to(response_mock, "GET", f"{BASE_V1}/vehicles/VID/monthlyreport/v2")) == 2


@pytest.mark.asyncio
async def test_raw_status_falls_back_to_latest(response_mock: aioresponses, make_token_manager):
    response_mock.get(f"{BASE_V2}/vehicles/VID/status", status=403)
    response_mock.get(STATUS_URL, status=400, body=DISALLOWED)
    response_mock.get(STATUS_LATEST_V1, payload={"vehicleStatus": {"doorLock": True}})
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        response = await router.get_vehicle_status_raw("VID", None)
    assert response.json() == {"vehicleStatus": {"doorLock": True}}


@pytest.mark.asyncio
async def test_ccs2_car_status_latest(response_mock: aioresponses, make_token_manager):
    url = f"{BASE_V2}/vehicles/VID/ccs2/carstatus/latest"
    response_mock.get(url, payload={"resMsg": {"state": {"Vehicle": {"Drivetrain": {"Odometer": 10}}}}})
    response_mock.get(url, status=500)
    async with aiohttp.ClientSession() as session:
        router = EndpointRouter(make_token_manager(session))
        response = await router.get_vehicle_ccs2_car_status_latest("VID", "KMH000001")
        assert response.json() == {"Drivetrain": {"Odometer": 10}}
        response = await router.get_vehicle_ccs2_car_status_latest("VID", "KMH000001")
        assert response.status == 404
        assert response.json() == {}
