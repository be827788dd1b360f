"""
bluelinkconnect - A Python 3 library for interacting with Hyundai and Kia BlueLink services.

Covers token handling, endpoint fallbacks, status normalization, vehicle commands
and command result polling against the BlueLink cloud.
"""

import bluelinkconnect.const as const
from bluelinkconnect.connection import Connection
from bluelinkconnect.vehicle import Vehicle
from bluelinkconnect.api.endpoints import Endpoints, load_endpoint_tree, resolve_endpoints
from bluelinkconnect.exceptions import (
    BlueLinkException,
    BlueLinkConfigException,
    BlueLinkAuthenticationException,
    BlueLinkRequestException,
    BlueLinkCommandFailedException,
    BlueLinkCommandTimeoutException,
)

from .__version__ import __version__

__all__ = [
    "Connection",
    "Vehicle",
    "Endpoints",
    "load_endpoint_tree",
    "resolve_endpoints",
    "BlueLinkException",
    "BlueLinkConfigException",
    "BlueLinkAuthenticationException",
    "BlueLinkRequestException",
    "BlueLinkCommandFailedException",
    "BlueLinkCommandTimeoutException",
    "const",
    "__version__",
]
