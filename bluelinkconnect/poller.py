#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Polling of asynchronous vehicle command results."""

from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Optional
import asyncio
import logging
import time

from bluelinkconnect.api.models import VehicleCommandResponse
from bluelinkconnect.const import POLL_INTERVAL, POLL_TIMEOUT
from bluelinkconnect.exceptions import BlueLinkCommandTimeoutException, BlueLinkRequestException

_LOGGER = logging.getLogger(__name__)


class PollOutcome(Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'


class PollerState(Enum):
    SCHEDULED = 'scheduled'
    POLLING = 'polling'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'
    COMPLETED = 'completed'


class LoopScheduler:
    """Runs callbacks after a delay on the event loop, coroutine callbacks become tasks."""

    def __init__(self: LoopScheduler, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._tasks = set()

    def schedule(self: LoopScheduler, callback: Callable[[], Any], delay: float) -> asyncio.TimerHandle:
        """
        Schedule callback in delay seconds.

        Returns:
            handle with cancel(), an already running task is left to finish
        """
        loop = self._loop or asyncio.get_running_loop()

        def run():
            result = callback()
            if asyncio.iscoroutine(result):
                task = loop.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

        return loop.call_later(delay, run)

    def _task_done(self: LoopScheduler, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            _LOGGER.warning(f'Scheduled task failed: {error}', exc_info=error)


class CommandResultPoller:
    """
    Polls the notifications feed until a command settles or times out.

    The owning vehicle supplies the router, the scheduler and the active
    poller slot. A poller that is cancelled or superseded never calls back.
    """

    def __init__(
        self: CommandResultPoller,
        vehicle,
        response: VehicleCommandResponse,
        pending_command: Optional[Any] = None,
        timeout: float = POLL_TIMEOUT,
    ) -> None:
        """
        Init poller

        Arguments:
            vehicle: owner, provides router, scheduler, is_poller_active(),
                on_poller_completed() and handle_poll_completion()
            response: accepted command carrying the message id
            pending_command: Optional. Context handed back on completion
            timeout: seconds until the command is given up
        """
        self._vehicle = vehicle
        self.vehicle_id = vehicle.vehicle_id
        self.vin = vehicle.vin
        self.message_id = response.message_id
        self.action = response.action
        self.pending_command = pending_command
        self.deadline = time.monotonic() + timeout
        self.state = PollerState.SCHEDULED
        self._handle = None
        self._disposed = False
        self._cancelled = False
        self._completed = False

    @property
    def disposed(self: CommandResultPoller) -> bool:
        return self._disposed

    @property
    def is_still_active(self: CommandResultPoller) -> bool:
        return not self._disposed and self._vehicle.is_poller_active(self)

    def schedule_initial(self: CommandResultPoller, interval: float = POLL_INTERVAL) -> None:
        self._schedule_next(interval)

    def cancel(self: CommandResultPoller) -> None:
        """Stop polling without a completion callback."""
        self._cancelled = True
        self._disposed = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule_next(self: CommandResultPoller, delay: float) -> None:
        if self._disposed:
            return
        self.state = PollerState.SCHEDULED
        self._handle = self._vehicle.scheduler.schedule(self.run, delay)

    def _reschedule_if_time_left(self: CommandResultPoller) -> bool:
        if self._disposed or time.monotonic() >= self.deadline:
            return False
        self._schedule_next(POLL_INTERVAL)
        return True

    async def run(self: CommandResultPoller) -> None:
        """One poll tick."""
        if not self.is_still_active:
            return
        self._handle = None
        self.state = PollerState.POLLING

        router = self._vehicle.router
        if router is None:
            if not self._reschedule_if_time_left():
                self.state = PollerState.FAILED
                await self._handle_failure('API not available')
            return

        try:
            ready = await router.poll_vehicle_command_result(self.vehicle_id, self.vin, self.message_id)
            if ready:
                if self._disposed:
                    return
                self.state = PollerState.SUCCEEDED
                await self._handle_success()
                return
        except BlueLinkRequestException as error:
            if self._disposed:
                return
            if isinstance(error, BlueLinkCommandTimeoutException):
                self.state = PollerState.TIMED_OUT
            else:
                self.state = PollerState.FAILED
            await self._handle_failure(str(error.status))
            return
        except Exception as error:
            _LOGGER.debug(f'Command result poll for {self.message_id} failed, will retry: {error}')

        if not self._reschedule_if_time_left():
            if self._disposed:
                return
            self.state = PollerState.TIMED_OUT
            await self._handle_failure('Timeout')

    async def _handle_success(self: CommandResultPoller) -> None:
        _LOGGER.info(f'Command {self.action} ({self.message_id}) for {self.vin} succeeded')
        if self._complete():
            await self._vehicle.handle_poll_completion(PollOutcome.SUCCESS, self.pending_command)

    async def _handle_failure(self: CommandResultPoller, reason: str) -> None:
        if not self._disposed:
            _LOGGER.warning(f'Command {self.action} ({self.message_id}) for {self.vin} failed: {reason}')
        if self._complete():
            await self._vehicle.handle_poll_completion(PollOutcome.FAILURE, self.pending_command)

    def _complete(self: CommandResultPoller) -> bool:
        """Mark completed, True only for the first completion of a live poller."""
        if self._completed or self._cancelled:
            return False
        self._completed = True
        self._disposed = True
        self.state = PollerState.COMPLETED
        self._vehicle.on_poller_completed(self)
        return True
