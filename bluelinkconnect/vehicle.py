#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Vehicle class for BlueLink Connect."""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from json import dumps as to_json
from typing import Any, Optional
import logging

from bluelinkconnect.api.commands import ClimateOptions
from bluelinkconnect.api.models import (
    Reservation,
    VehicleCommandResponse,
    VehicleLocation,
    VehicleStatus,
    VehicleSummary,
    is_valid_location,
)
from bluelinkconnect.const import (
    COMMAND_REFRESH_DELAY,
    POLL_INTERVAL,
    RESERVATION_DEFAULT_HOUR,
    RESERVATION_DEFAULT_MINUTE,
)
from bluelinkconnect.exceptions import BlueLinkException, BlueLinkRequestException
from bluelinkconnect.poller import CommandResultPoller, PollOutcome
from bluelinkconnect.strings.globals import (
    LOCK,
    UNLOCK,
    START,
    STOP,
    START_CHARGE,
    STOP_CHARGE,
    SET_CHARGE_LIMIT,
    SET_TARGET_TEMP,
    SET_RESERVATION,
)

_LOGGER = logging.getLogger(__name__)

# Status field each command changes, restored when the command fails
OPTIMISTIC_STATES = {
    LOCK: ('doors_locked', True),
    UNLOCK: ('doors_locked', False),
    START: ('climate_on', True),
    SET_TARGET_TEMP: ('climate_on', True),
    STOP: ('climate_on', False),
    START_CHARGE: ('charging', True),
    STOP_CHARGE: ('charging', False),
}


@dataclass
class PendingCommand:
    """Command awaiting its result, with the state it replaced."""
    action: str
    field: Optional[str] = None
    previous: Any = None


class Vehicle:
    def __init__(self, conn, summary: VehicleSummary):
        _LOGGER.debug(f'Creating Vehicle class object for {summary.vin}')
        self._connection = conn
        self._summary = summary
        self._states = {}
        self._requests = {
            'latest': 'N/A',
            'state': 'N/A',
        }
        self.climate = ClimateOptions()

        self._command_in_progress = False
        self._poller: Optional[CommandResultPoller] = None
        self._refresh_blocked_for_poll = False
        self._refresh_pending_during_poll = False
        self._refresh_handle = None

 #### API get and set functions ####
  # Update vehicle data
    async def refresh(self) -> Optional[VehicleStatus]:
        """
        Fetch status, location and reservation of the vehicle.

        Returns:
            VehicleStatus, None when the refresh was deferred or failed
        """
        if self._should_defer_refresh():
            _LOGGER.debug(f'Deferring refresh of {self.vin} while a command result is polled')
            return None
        return await self._refresh()

    async def _refresh(self) -> Optional[VehicleStatus]:
        router = self.router
        if router is None:
            _LOGGER.warning(f'Cannot refresh {self.vin}, not logged in')
            return None
        try:
            status = await router.get_vehicle_status(self.vehicle_id, self.vin, self.ccs2)
        except BlueLinkRequestException as error:
            _LOGGER.warning(f'Failed to refresh status of {self.vin}: {error.status}')
            return None
        self._states['status'] = status

        if is_valid_location(status.latitude, status.longitude):
            self._states['location'] = VehicleLocation(status.latitude, status.longitude)
        else:
            try:
                self._states['location'] = await router.get_vehicle_location(self.vehicle_id, self.vin, self.ccs2)
            except BlueLinkException as error:
                _LOGGER.warning(f'Failed to fetch location of {self.vin}: {error.status}')

        reservation = await router.get_reservation(self.vehicle_id, self.vin, self.ccs2)
        if reservation is not None:
            self._states['reservation'] = reservation
        return status

    def _should_defer_refresh(self) -> bool:
        if self._refresh_blocked_for_poll or self._poller is not None:
            self._refresh_pending_during_poll = True
            return True
        return False

  # Commands
    async def perform_command(self, action: str, **kwargs) -> bool:
        """
        Send a command to the vehicle.

        Parameters:
            action: lock, unlock, start, stop, startCharge, stopCharge,
                setChargeLimit, setTargetTemperature or setReservation
            kwargs: command arguments (limit_ac, limit_dc, temperature,
                active, hour, minute, defrost)
        Returns:
            True when the command was accepted, False when ignored because
            another command is still pending
        """
        if action not in COMMANDS:
            _LOGGER.error(f'Invalid vehicle command: {action}')
            raise BlueLinkException(f'Invalid vehicle command: {action}')
        if self._command_in_progress:
            _LOGGER.warning(f'Ignoring command {action} for {self.vin}, another command is still pending')
            return False
        commands = self._connection.commands
        if commands is None:
            raise BlueLinkException(f'Cannot send {action} to {self.vin}, not logged in')

        self._command_in_progress = True
        pending = self._apply_optimistic_state(action)
        try:
            self._requests['latest'] = action
            response = await COMMANDS[action](self, commands, **kwargs)
        except Exception:
            self._restore_state(pending)
            self._requests[action] = {'status': 'Failed', 'timestamp': datetime.now().replace(microsecond=0)}
            self._command_in_progress = False
            raise
        self._requests[action] = {
            'status': 'Pending' if response.is_async else 'Accepted',
            'timestamp': datetime.now().replace(microsecond=0),
            'id': response.message_id,
        }
        self._trigger_async_refresh(response, pending)
        return True

    async def _lock(self, commands, **kwargs) -> VehicleCommandResponse:
        return await commands.lock(self.vehicle_id, self.vin, self.ccs2)

    async def _unlock(self, commands, **kwargs) -> VehicleCommandResponse:
        return await commands.unlock(self.vehicle_id, self.vin, self.ccs2)

    async def _start(self, commands, **kwargs) -> VehicleCommandResponse:
        return await commands.start(self.vehicle_id, self.vin, self.climate, self.ccs2)

    async def _stop(self, commands, **kwargs) -> VehicleCommandResponse:
        return await commands.stop(self.vehicle_id, self.vin, self.ccs2)

    async def _start_charge(self, commands, **kwargs) -> VehicleCommandResponse:
        return await commands.start_charge(self.vehicle_id, self.vin, self.ccs2)

    async def _stop_charge(self, commands, **kwargs) -> VehicleCommandResponse:
        return await commands.stop_charge(self.vehicle_id, self.vin, self.ccs2)

    async def _set_charge_limit(self, commands, limit_ac=None, limit_dc=None, **kwargs) -> VehicleCommandResponse:
        # -1 leaves a side unchanged
        limit_ac = -1 if limit_ac is None else int(limit_ac)
        limit_dc = -1 if limit_dc is None else int(limit_dc)
        return await commands.set_charge_limit(self.vehicle_id, self.vin, limit_ac, limit_dc, self.ccs2)

    async def _set_target_temperature(self, commands, temperature=None, **kwargs) -> VehicleCommandResponse:
        if temperature is None:
            raise BlueLinkException('A target temperature is required')
        self.climate.temperature = float(temperature)
        return await commands.set_target_temperature(self.vehicle_id, self.vin, temperature, self.climate, self.ccs2)

    async def _set_reservation(self, commands, active=None, hour=None, minute=None, defrost=None, **kwargs) -> VehicleCommandResponse:
        current = await commands.get_reservation(self.vehicle_id, self.vin, self.ccs2)
        if current is None:
            current = Reservation(False, RESERVATION_DEFAULT_HOUR, RESERVATION_DEFAULT_MINUTE, False)
        changes = {}
        if active is not None:
            changes['active'] = bool(active)
        if hour is not None:
            changes['hour'] = int(hour)
        if minute is not None:
            changes['minute'] = int(minute)
        if defrost is not None:
            changes['defrost'] = bool(defrost)
        reservation = replace(current, **changes)
        response = await commands.set_reservation(self.vehicle_id, self.vin, reservation, self.ccs2)
        self._states['reservation'] = reservation
        return response

    async def set_lock(self, action: str) -> bool:
        """Remote lock and unlock actions."""
        if action not in [LOCK, UNLOCK]:
            _LOGGER.error(f'Invalid lock action: {action}')
            raise BlueLinkException(f'Invalid lock action: {action}')
        return await self.perform_command(action)

    async def set_climatisation(self, action: str) -> bool:
        """Start or stop climate control with the current climate settings."""
        if action not in [START, STOP]:
            _LOGGER.error(f'Invalid climatisation action: {action}')
            raise BlueLinkException(f'Invalid climatisation action: {action}')
        return await self.perform_command(action)

    async def set_climatisation_temp(self, temperature: float) -> bool:
        return await self.perform_command(SET_TARGET_TEMP, temperature=temperature)

    def set_climate_options(self, **options) -> None:
        """Update climate settings used by the next climate start (defrost, heating...)."""
        self.climate = replace(self.climate, **options)

    async def set_charger(self, action: str) -> bool:
        """Start or stop charging."""
        if action not in [START, STOP]:
            _LOGGER.error(f'Invalid charger action: {action}')
            raise BlueLinkException(f'Invalid charger action: {action}')
        return await self.perform_command(START_CHARGE if action == START else STOP_CHARGE)

    async def set_charge_limit(self, limit_ac: Optional[int] = None, limit_dc: Optional[int] = None) -> bool:
        return await self.perform_command(SET_CHARGE_LIMIT, limit_ac=limit_ac, limit_dc=limit_dc)

    async def set_reservation(self, active=None, hour=None, minute=None, defrost=None) -> bool:
        """Change the departure reservation, unset values are kept."""
        return await self.perform_command(SET_RESERVATION, active=active, hour=hour, minute=minute, defrost=defrost)

  # Command state
    def _apply_optimistic_state(self, action: str) -> PendingCommand:
        status = self._states.get('status')
        if action not in OPTIMISTIC_STATES or status is None:
            return PendingCommand(action)
        field, value = OPTIMISTIC_STATES[action]
        pending = PendingCommand(action, field, getattr(status, field))
        setattr(status, field, value)
        return pending

    def _restore_state(self, pending: Optional[PendingCommand]) -> None:
        status = self._states.get('status')
        if pending is None or pending.field is None or status is None:
            return
        setattr(status, pending.field, pending.previous)

    def _complete_command(self) -> None:
        self._command_in_progress = False

    def _trigger_async_refresh(self, response: VehicleCommandResponse, pending: PendingCommand) -> None:
        if response.is_async:
            self._refresh_blocked_for_poll = True
            self._refresh_pending_during_poll = True
            self._schedule_command_result_poll(response, pending)
        else:
            self._schedule_command_refresh()

    def _schedule_command_refresh(self) -> None:
        if self._refresh_blocked_for_poll or self._poller is not None:
            self._refresh_pending_during_poll = True
            return
        if self._refresh_handle is not None:
            return
        self._refresh_handle = self.scheduler.schedule(self._command_refresh, COMMAND_REFRESH_DELAY)

    async def _command_refresh(self) -> None:
        try:
            await self.refresh()
        except BlueLinkException as error:
            _LOGGER.warning(f'Refresh after command failed for {self.vin}: {error.status}')
        finally:
            self._refresh_handle = None
            self._complete_command()

    def _schedule_command_result_poll(self, response: VehicleCommandResponse, pending: PendingCommand) -> None:
        if self._poller is not None:
            self._poller.cancel()
        poller = CommandResultPoller(self, response, pending)
        self._poller = poller
        poller.schedule_initial(POLL_INTERVAL)

    def is_poller_active(self, poller: CommandResultPoller) -> bool:
        return self._poller is poller

    def on_poller_completed(self, poller: CommandResultPoller) -> None:
        if self._poller is poller:
            self._poller = None

    async def handle_poll_completion(self, outcome: PollOutcome, pending: Optional[PendingCommand]) -> None:
        """Called once by the active poller when the command settled."""
        action = pending.action if pending is not None else self._requests.get('latest')
        try:
            if outcome is PollOutcome.SUCCESS:
                self._set_request_status(action, 'Success')
                try:
                    await self._refresh()
                except BlueLinkException as error:
                    _LOGGER.warning(f'Refresh after command {action} failed for {self.vin}: {error.status}')
                finally:
                    self._complete_command()
            else:
                self._set_request_status(action, 'Failed')
                self._restore_state(pending)
                self._complete_command()
        finally:
            self._refresh_blocked_for_poll = False
            if self._refresh_pending_during_poll:
                self._refresh_pending_during_poll = False
                self._schedule_command_refresh()

    def _set_request_status(self, action: Optional[str], status: str) -> None:
        request = self._requests.get(action)
        if isinstance(request, dict):
            request['status'] = status
        self._requests['state'] = status

    def close(self) -> None:
        """Cancel pending polls and refreshes."""
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None
        self._refresh_blocked_for_poll = False
        self._refresh_pending_during_poll = False
        self._command_in_progress = False

 #### Vehicle class helpers ####
  # Vehicle info
    @property
    def attrs(self):
        return self._states

    @property
    def router(self):
        """Endpoint router, None while the connection is not logged in."""
        return self._connection.router

    @property
    def scheduler(self):
        return self._connection.scheduler

    @property
    def vin(self) -> str:
        return self._summary.vin

    @property
    def unique_id(self) -> str:
        return self.vin

    @property
    def vehicle_id(self) -> str:
        return self._summary.vehicle_id

    @property
    def ccs2(self) -> bool:
        return self._summary.ccs2_supported

    @property
    def nickname(self) -> Optional[str]:
        return self._summary.label

    @property
    def model(self) -> Optional[str]:
        """Return model"""
        return self._summary.model

    @property
    def model_year(self) -> Optional[str]:
        return self._summary.model_year

    @property
    def summary(self) -> VehicleSummary:
        return self._summary

 #### Information from vehicle states ####
  # Status
    @property
    def status(self) -> Optional[VehicleStatus]:
        return self._states.get('status')

    @property
    def location(self) -> Optional[VehicleLocation]:
        return self._states.get('location')

    @property
    def reservation(self) -> Optional[Reservation]:
        return self._states.get('reservation')

    def _status_value(self, attr: str):
        status = self.status
        return getattr(status, attr) if status is not None else None

    @property
    def door_locked(self) -> Optional[bool]:
        return self._status_value('doors_locked')

    @property
    def battery_level(self) -> Optional[float]:
        return self._status_value('battery_level')

    @property
    def charging(self) -> Optional[bool]:
        return self._status_value('charging')

    @property
    def climatisation(self) -> Optional[bool]:
        return self._status_value('climate_on')

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._status_value('last_updated')

  # Requests
    @property
    def command_in_progress(self) -> bool:
        return self._command_in_progress

    @property
    def refresh_deferred(self) -> bool:
        return self._refresh_pending_during_poll

    @property
    def poller(self) -> Optional[CommandResultPoller]:
        return self._poller

    @property
    def last_request(self):
        """Return status and timestamp of the latest command."""
        latest = self._requests.get('latest')
        return latest, self._requests.get(latest, {})

 #### Helper functions ####
    def __str__(self):
        return self.vin

    @property
    def json(self):
        def serialize(obj):
            if isinstance(obj, datetime):
                return obj.isoformat()
            if hasattr(obj, 'value'):
                return obj.value
            return str(obj)

        states = {key: asdict(value) for key, value in self.attrs.items()}
        return to_json(
            OrderedDict(sorted(states.items())),
            indent=4,
            default=serialize
        )


COMMANDS = {
    LOCK: Vehicle._lock,
    UNLOCK: Vehicle._unlock,
    START: Vehicle._start,
    STOP: Vehicle._stop,
    START_CHARGE: Vehicle._start_charge,
    STOP_CHARGE: Vehicle._stop_charge,
    SET_CHARGE_LIMIT: Vehicle._set_charge_limit,
    SET_TARGET_TEMP: Vehicle._set_target_temperature,
    SET_RESERVATION: Vehicle._set_reservation,
}
