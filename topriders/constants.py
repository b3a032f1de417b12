"""Constants and default configuration values for the top riders widget."""

# Default tuning values; millisecond units match the public configuration surface.
DEFAULT_TOP_ML_COUNT = 10
DEFAULT_TOP_DL_COUNT = 10
DEFAULT_TOP_PRIME_COUNT = 5
DEFAULT_REFRESH_INTERVAL_MS = 300000  # 5 minutes
DEFAULT_CACHE_EXPIRY_MS = 600000  # 10 minutes
DEFAULT_REQUEST_TIMEOUT_MS = 10000  # 10 seconds
DEFAULT_SWEEP_INTERVAL_MS = 60000
DEFAULT_DEBOUNCE_MS = 1000
DEFAULT_CONTAINER_SELECTOR = "#top-riders-container"

# Entry validation bounds
MIN_VALID_SCORE = 0.0
MIN_VALID_RANK = 1
MAX_VALID_RANK = 1000

CSS_CLASSES = {
    "container": "top-riders-container",
    "section": "top-riders-section",
    "table": "top-riders-table",
    "header": "top-riders-header",
    "loading": "top-riders-loading",
    "error": "top-riders-error",
    "empty": "top-riders-empty",
    "refresh_btn": "top-riders-refresh-btn",
}

ERROR_MESSAGES = {
    "network": "Unable to fetch data. Please check your connection.",
    "parse": "Unable to process standings data.",
    "no_data": "No rider data available.",
    "generic": "An error occurred while loading top riders.",
}

CACHE_KEY_PREFIX = "topRiders_"
CACHE_KEY = CACHE_KEY_PREFIX + "cachedData"

# (display name, gid) for the published league workbook
DEFAULT_TABS = (
    ("Main League", "2052107479"),
    ("ML Primes", "394788670"),
    ("Dev League", "732061928"),
    ("DL Primes", "1028354950"),
)
