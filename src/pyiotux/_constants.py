"""Internal constants shared across the library."""

BASE_URL = "https://api.iotux.app"
USER_AGENT = "pyiotux"
AUTH_HEADER = "X-Auth-Token"
AUTH_REJECTED_STATUS = 401

# Durable store keys (compatible with the mobile app's storage layout)
QUEUE_KEY = "@command_queue"
AUTH_TOKEN_KEY = "@iotux_auth_token"
USER_DATA_KEY = "@iotux_user_data"
CACHED_DEVICES_KEY = "@cached_devices"
CACHED_ALERTS_KEY = "@cached_alerts"

DEFAULT_MAX_RETRIES = 3
DEFAULT_SAVE_DEBOUNCE = 0.5
DEFAULT_DEDUP_TTL = 1.0
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_PROBE_TIMEOUT = 5.0
