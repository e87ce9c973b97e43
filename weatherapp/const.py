DOMAIN = "weatherapp"
VERSION = "1.0.0"

GEOCODING_API_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_API_URL = "https://api.open-meteo.com/v1/forecast"
CONNECTIVITY_CHECK_URL = "https://api.open-meteo.com"

# Field lists requested from the forecast endpoint
CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,apparent_temperature,precipitation,weather_code,wind_speed_10m"
DAILY_FIELDS = "temperature_2m_max,temperature_2m_min,weather_code,precipitation_sum"
HOURLY_FIELDS = "temperature_2m,weather_code,relative_humidity_2m"

GEOCODING_RESULT_COUNT = 5

# Timeouts (seconds)
REQUEST_TIMEOUT = 30          # forecast / geocoding, after which the cache fallback applies
CONNECTIVITY_TIMEOUT = 3      # HEAD probe used to decide whether to skip the network

# Forecast shaping
DAILY_FORECAST_DAYS = 3
HOURLY_FORECAST_HOURS = 24

# Local store
STORE_FILE_NAME = "weather_prefs.json"
CACHED_WEATHER_KEY = "cached_weather"
CACHE_TIMESTAMP_KEY = "cache_timestamp"
TEMPERATURE_UNIT_KEY = "temperature_unit"
SEARCH_HISTORY_KEY = "search_history"
SEARCH_HISTORY_LIMIT = 10
SEARCH_HISTORY_DELIMITER = ","

# Favorites
FAVORITES_ROOT = "favorites"
CITY_NAME_MAX_LENGTH = 100
NOTE_MAX_LENGTH = 500

IDENTITY_SIGN_UP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signUp"
IDENTITY_REFRESH_URL = "https://securetoken.googleapis.com/v1/token"
TOKEN_REFRESH_MARGIN = 60     # refresh the id token this many seconds before it expires

# WMO weather code → condition label.
# Codes missing here map to UNKNOWN_CONDITION.
WMO_CONDITIONS: dict[int, str] = {
    0: "Clear sky",
    1: "Partly cloudy", 2: "Partly cloudy", 3: "Partly cloudy",
    45: "Foggy", 48: "Foggy",
    51: "Drizzle", 53: "Drizzle", 55: "Drizzle",
    61: "Rain", 63: "Rain", 65: "Rain",
    66: "Freezing rain", 67: "Freezing rain",
    71: "Snow", 73: "Snow", 75: "Snow",
    77: "Snow grains",
    80: "Rain showers", 81: "Rain showers", 82: "Rain showers",
    85: "Snow showers", 86: "Snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail", 99: "Thunderstorm with hail",
}

# WMO weather code → emoji glyph shown next to the condition.
WMO_EMOJI: dict[int, str] = {
    0: "☀️",
    1: "⛅", 2: "⛅", 3: "⛅",
    45: "\U0001f32b️", 48: "\U0001f32b️",
    51: "\U0001f326️", 53: "\U0001f326️", 55: "\U0001f326️",
    61: "\U0001f327️", 63: "\U0001f327️", 65: "\U0001f327️",
    66: "\U0001f327️", 67: "\U0001f327️",
    71: "❄️", 73: "❄️", 75: "❄️",
    77: "❄️",
    80: "\U0001f327️", 81: "\U0001f327️", 82: "\U0001f327️",
    85: "\U0001f328️", 86: "\U0001f328️",
    95: "⛈️",
    96: "⛈️", 99: "⛈️",
}

UNKNOWN_CONDITION = "Unknown"
UNKNOWN_EMOJI = "\U0001f321️"
