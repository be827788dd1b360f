#!/usr/bin/env python3
# Simple script to test login and a remote command
"""TESTING"""
import asyncio
import logging
import sys

import aiohttp

from bluelinkconnect import Connection
from bluelinkconnect.connection import read_config

logging.basicConfig(level=logging.DEBUG if '-v' in sys.argv else logging.INFO)


async def main():
    """Async main"""
    vin = ""
    # Create aiohttp session
    mysess = aiohttp.ClientSession()

    """
    Endpoints, refresh token and PIN come from the BLUELINK_* environment
    variables, see README.md. The refresh token may be rotated by the
    backend, store connection.refresh_token for the next run.
    """
    connection = Connection(mysess, **read_config())
    if await connection.doLogin():
        print("BLUELINK LOGIN SUCCESS!")
    else:
        await mysess.close()
        exit()

    if not await connection.get_vehicles():
        await mysess.close()
        exit()
    for vehicle in connection.vehicles:
        print(f"Vehicle {vehicle} ({vehicle.nickname})")
    print()

    vehicle = connection.vehicle(vin) if vin else connection.vehicles[0]
    await vehicle.refresh()
    print(vehicle.json)
    print()
    print(f"Doors locked: {vehicle.door_locked}")
    print(f"Battery level: {vehicle.battery_level}")
    print(f"Location: {vehicle.location}")
    print(f"Reservation: {vehicle.reservation}")
    print()

    # Commands with a message id are polled in the background
    if await vehicle.set_lock("lock"):
        print(f"Lock requested: {vehicle.last_request}")
    while vehicle.command_in_progress:
        await asyncio.sleep(5)
    print(f"Lock finished: {vehicle.last_request}")
    print(f"Doors locked: {vehicle.door_locked}")

    await connection.terminate()
    print(f"Refresh token for the next run: {connection.refresh_token}")
    if mysess is not None:
        await mysess.close()

asyncio.run(main())
exit()
