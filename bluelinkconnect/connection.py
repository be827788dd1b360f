#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Communicate with Hyundai and Kia BlueLink services."""
import os
import logging
import asyncio

from sys import argv
from typing import Optional

from aiohttp import ClientSession

from bluelinkconnect.__version__ import __version__ as lib_version
from bluelinkconnect.api.commands import CommandDispatcher
from bluelinkconnect.api.endpoints import Endpoints, load_endpoint_tree, resolve_endpoints
from bluelinkconnect.api.router import EndpointRouter
from bluelinkconnect.api.stamp import StampProvider
from bluelinkconnect.api.token import TokenManager
from bluelinkconnect.exceptions import (
    BlueLinkAuthenticationException,
    BlueLinkConfigException,
    BlueLinkException,
    BlueLinkRequestException,
)
from bluelinkconnect.poller import LoopScheduler
from bluelinkconnect.vehicle import Vehicle

_LOGGER = logging.getLogger(__name__)


class Connection:
    """ Connection to BlueLink services """
  # Init connection class
    def __init__(
        self,
        session: ClientSession,
        endpoints: Endpoints,
        refresh_token: Optional[str] = None,
        pin: Optional[str] = None,
        device_id: Optional[str] = None,
        fulldebug: bool = False,
        scheduler=None,
        **optional
    ):
        """
        Initialize

        Arguments:
            session: aiohttp session shared by all requests
            endpoints: region and brand endpoints
            refresh_token: refresh token obtained out of band
            pin: Optional. Account PIN, needed for vehicle commands
            device_id: Optional. Previously registered device id
            fulldebug: trace requests and responses (redacted)
            scheduler: Optional. Object with schedule(callback, delay), defaults to the event loop
            optional: stamp_url, stamp_cache_dir
        """
        self._session = session
        self._session_fulldebug = fulldebug
        self._session_endpoints = endpoints
        self.scheduler = scheduler or LoopScheduler()

        self._stamp_provider = StampProvider(
            session,
            stamp_url=optional.get('stamp_url'),
            cache_dir=optional.get('stamp_cache_dir'),
        )
        self._tokens = TokenManager(
            session,
            endpoints,
            self._stamp_provider,
            refresh_token=refresh_token,
            pin=pin,
            device_id=device_id,
            fulldebug=fulldebug,
        )
        self._router = EndpointRouter(self._tokens)
        self._commands = CommandDispatcher(self._tokens, self._router)
        self._logged_in = False

        self._vehicles = []

        _LOGGER.info(f'Init BlueLink Connect library, version {lib_version}')
        _LOGGER.debug(f'Using service {endpoints.base_url}')

  # API login/logout
    async def doLogin(self) -> bool:
        """Login method, exchanges the refresh token for an access token."""
        _LOGGER.info('Initiating new login')
        try:
            await self._tokens.login()
        except BlueLinkConfigException as error:
            _LOGGER.error(f'Invalid configuration: {error.status}')
            return False
        except BlueLinkAuthenticationException as error:
            _LOGGER.warning(f'Login failed: {error.status}')
            return False
        except BlueLinkRequestException as error:
            _LOGGER.warning(f'Login failed, the server might be temporarily unavailable: {error.status}')
            return False
        self._logged_in = True
        _LOGGER.info('Login successful')
        return True

    async def terminate(self):
        """Stop pending command polls and refreshes."""
        _LOGGER.info('Initiating logout')
        for vehicle in self._vehicles:
            vehicle.close()
        self._logged_in = False

  # Class get data functions
    async def get_vehicles(self) -> bool:
        """Fetch vehicle list from user profile."""
        try:
            summaries = await self._router.list_vehicles()
        except BlueLinkException as error:
            _LOGGER.warning(f'Failed to fetch vehicle list: {error.status}')
            return False

        vehicles = []
        for summary in summaries:
            vehicle = self.vehicle(summary.vin)
            if vehicle is None:
                vehicle = Vehicle(self, summary)
            vehicles.append(vehicle)
        self._vehicles = vehicles
        if not vehicles:
            _LOGGER.info('No vehicles in account')
        return True

    async def update_all(self) -> bool:
        """Update status of all vehicles."""
        if len(self._vehicles) == 0:
            _LOGGER.info('No vehicles in account to update')
            return True
        _LOGGER.debug('Calling refresh for all vehicles')
        results = await asyncio.gather(
            *[vehicle.refresh() for vehicle in self._vehicles],
            return_exceptions=True
        )
        for vehicle, result in zip(self._vehicles, results):
            if isinstance(result, Exception):
                _LOGGER.warning(f'An error was encountered while refreshing {vehicle.vin}: {result}')
        return not any(isinstance(result, Exception) for result in results)

  # Properties
    @property
    def logged_in(self) -> bool:
        return self._logged_in

    @property
    def router(self) -> Optional[EndpointRouter]:
        """Endpoint router, None until logged in."""
        return self._router if self._logged_in else None

    @property
    def commands(self) -> Optional[CommandDispatcher]:
        return self._commands if self._logged_in else None

    @property
    def tokens(self) -> TokenManager:
        return self._tokens

    @property
    def refresh_token(self) -> Optional[str]:
        """Current refresh token, the backend may rotate it on refresh."""
        return self._tokens.refresh_token

    @property
    def device_id(self) -> Optional[str]:
        return self._tokens.device_id

    @property
    def vehicles(self):
        """Return list of Vehicle objects."""
        return self._vehicles

    def vehicle(self, vin):
        """Return vehicle object for given vin."""
        return next(
            (
                vehicle
                for vehicle in self.vehicles
                if vehicle.unique_id.lower() == vin.lower()
            ), None
        )


def read_config() -> dict:
    """
    Connection settings from the environment.

    BLUELINK_ENDPOINTS points at a JSON tree {region: {brand: endpoints}},
    resolved with BLUELINK_REGION and BLUELINK_BRAND.
    """
    path = os.environ.get('BLUELINK_ENDPOINTS')
    if not path:
        raise BlueLinkConfigException('BLUELINK_ENDPOINTS is not set')
    tree = load_endpoint_tree(path)
    endpoints = resolve_endpoints(
        tree,
        os.environ.get('BLUELINK_REGION', 'EU'),
        os.environ.get('BLUELINK_BRAND', 'hyundai'),
    )
    endpoints = endpoints.with_client(
        os.environ.get('BLUELINK_CLIENT_ID'),
        os.environ.get('BLUELINK_CLIENT_SECRET'),
    )
    return {
        'endpoints': endpoints,
        'refresh_token': os.environ.get('BLUELINK_REFRESH_TOKEN'),
        'pin': os.environ.get('BLUELINK_PIN'),
        'device_id': os.environ.get('BLUELINK_DEVICE_ID'),
    }


async def main():
    """Main method."""
    if '-v' in argv:
        logging.basicConfig(level=logging.INFO)
    elif '-vv' in argv:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.ERROR)

    async with ClientSession(headers={'Connection': 'keep-alive'}) as session:
        connection = Connection(session, fulldebug='-vv' in argv, **read_config())
        if await connection.doLogin():
            if await connection.get_vehicles():
                for vehicle in connection.vehicles:
                    print(f'Vehicle id: {vehicle}')
                    status = await vehicle.refresh()
                    if status is not None:
                        print(vehicle.json)
        await connection.terminate()


if __name__ == '__main__':
    asyncio.run(main())
