"""Internal constants shared across the library."""

BASE_URL = "https://api.openweathermap.org/data/2.5"
USER_AGENT = "pywxcontrol"
SUCCESS_STATUS = 200
DEFAULT_UNITS = "metric"

DEFAULT_POLL_INTERVAL_SECONDS = 10
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0
DEFAULT_SETTINGS_PATH = "settings.json"
DEFAULT_NODE_NAME = "KSTWC"

FAVORITE_SLOTS: tuple[int, ...] = (1, 2, 3, 4)

# ------------------------------------------------------------------
# Status messages sent to the client
# ------------------------------------------------------------------

STATUS_STARTED = "started"
STATUS_STOPPED = "stopped"
MSG_DATA_RECEIVED = "Weather Data received."

# ------------------------------------------------------------------
# Built-in override presets  (id -> label, weather condition id, cloud %)
#
# Condition ids follow the provider's weather condition codes
# (2xx thunderstorm, 5xx rain, 6xx snow, 7xx atmosphere, 800 clear, 80x clouds).
# Preset 0 is the neutral row and is never exposed to the client.
# ------------------------------------------------------------------

DEFAULT_OVERRIDE_PRESETS: tuple[tuple[int, str, int, int], ...] = (
    (0, "None", 800, 0),
    (1, "Clear", 800, 0),
    (2, "Few Clouds", 801, 20),
    (3, "Overcast", 804, 100),
    (4, "Rain", 501, 90),
    (5, "Thunderstorm", 211, 100),
    (6, "Snow", 601, 90),
    (7, "Fog", 741, 100),
)
DEFAULT_SELECTED_PRESET = 1
