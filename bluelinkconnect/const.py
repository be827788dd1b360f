"""Constants for BlueLink Connect library."""

import os
import tempfile
from datetime import timedelta

# Stamp manifest sources
STAMP_URL = (
    'https://raw.githubusercontent.com/neoPix/bluelinky-stamps/master/'
    'hyundai-1eba27d2-9a5b-4eba-8ec7-97eb6c62fb51.v2.json'
)
STAMP_FALLBACK_URL = (
    'https://raw.githubusercontent.com/neoPix/bluelinky-stamps/main/'
    'hyundai-1eba27d2-9a5b-4eba-8ec7-97eb6c62fb51.v2.json'
)
STAMP_URL_ENV = 'BLUELINK_STAMP_URL'
STAMP_CACHE_DIR = os.path.join(tempfile.gettempdir(), 'bluelinkconnect')

# Request timeouts
TIMEOUT = timedelta(seconds=30)
STAMP_TIMEOUT = timedelta(seconds=20)

# Control token lifetime handling
CONTROL_TOKEN_MARGIN = timedelta(seconds=30)
CONTROL_TOKEN_DEFAULT_TTL = timedelta(seconds=300)

# Command result polling
POLL_INTERVAL = 5
POLL_TIMEOUT = 60
# Delay of the status refresh that follows a command
COMMAND_REFRESH_DELAY = 30

# Device registration
USER_AGENT = 'okhttp/3.12.1'
PUSH_TYPE = 'APNS'
PUSH_REG_ID_LENGTH = 64

# API paths
SPA_V1 = '/api/v1/spa'
SPA_V2 = '/api/v2/spa'
REGISTER_PATH = '/api/v1/spa/notifications/register'
CONTROL_TOKEN_PATH = '/api/v1/user/pin'
CCS2_PREFIX = 'ccs2/'

# Hosts that only accept form encoded token requests
FORM_TOKEN_HOSTS = ['idpconnect-', '-ccapi', 'apigw.ccs']

# Fragment of the body returned when an endpoint is blocked for the account
DISALLOWED_BODY = 'access to this api has been disallowed'

# Default climate settings
CLIMATE_DEFAULT_TEMP = '21.0'
TEMP_CODE_DEFAULT = '0CH'
TEMP_UNIT = 'C'
IGNITION_DURATION = 10
DRIVER_SEAT = 'L'

# Default reservation when the vehicle has none stored
RESERVATION_DEFAULT_HOUR = 7
RESERVATION_DEFAULT_MINUTE = 0
