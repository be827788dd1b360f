"""HTTP Strings."""

# Headers
AUTHZ = "Authorization"
AUTHZ_CCSP = "AuthorizationCCSP"
CONTROL_TOKEN_HEADER = "ccsp-control-token"
DEVICE_ID_HEADER = "ccsp-device-id"
SERVICE_ID_HEADER = "ccsp-service-id"
APPLICATION_ID_HEADER = "ccsp-application-id"
PIN_HEADER = "pin"
STAMP_HEADER = "Stamp"
USER_AGENT_HEADER = "User-Agent"
CONTENT = "Content-Type"
ACCEPT = "Accept"
APP_JSON = "application/json"
APP_JSON_UTF8 = "application/json;charset=UTF-8"
APP_FORM = "application/x-www-form-urlencoded"
BEARER = "Bearer "

# Methods
HTTP_GET = "GET"
HTTP_POST = "POST"
HTTP_PUT = "PUT"

# Status codes
HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_NOT_ALLOWED = 405
HTTP_SERVER_ERROR = 500

# Status codes that make a status request fall back to the legacy shape
HTTP_FALLBACK = [HTTP_BAD_REQUEST, HTTP_UNAUTHORIZED, HTTP_FORBIDDEN, HTTP_NOT_FOUND, HTTP_SERVER_ERROR]
