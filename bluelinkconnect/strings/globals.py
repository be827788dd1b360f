"""Strings used across the API layer."""

# JWT
SIG_VERIFY = "verify_signature"
EXPIRY = "exp"

# OAuth
GRANT_TYPE = "grant_type"
REFRESH_GRANT = "refresh_token"
CODE_GRANT = "authorization_code"
ACCESS_TOKEN = "access_token"
REFRESH_TOKEN = "refresh_token"
CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"
REDIR_URI = "redirect_uri"
CODE = "code"
CONNECTOR = "connector"

# Response envelopes
RES_MSG = "resMsg"
EV_STATUS = "evStatus"

# Control token
DEVICE_ID = "deviceId"
PIN = "pin"
CONTROL_TOKEN = "controlToken"

# Remote door actions
DOOR_CLOSE = "close"
DOOR_OPEN = "open"

# Command actions
ACTION = "action"
COMMAND = "command"
START = "start"
STOP = "stop"
LOCK = "lock"
UNLOCK = "unlock"
START_CHARGE = "startCharge"
STOP_CHARGE = "stopCharge"
SET_CHARGE_LIMIT = "setChargeLimit"
SET_TARGET_TEMP = "setTargetTemperature"
SET_RESERVATION = "setReservation"

# Notification record results
RESULT_SUCCESS = "success"
RESULT_FAIL = "fail"
RESULT_NO_RESPONSE = "non-response"

# Log placeholders
UNKNOWN_VIN = "UNKNOWN"
NO_BODY = "<none>"
EMPTY_BODY = "<empty>"
REDACTED = "***REDACTED***"
REDACTED_CONTROL_TOKEN = "Token [****REDACTED****]"
