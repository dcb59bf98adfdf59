"""All constants for the NuHeat cloud client - single source of truth."""

# === Cloud API ===
API_BASE = "https://www.mynuheat.com/api"
AUTH_PATH = "/authenticate/user"
THERMOSTATS_PATH = "/thermostats"
THERMOSTAT_PATH = "/thermostat"

# Application id sent with the login form (0 = web/mobile app)
APPLICATION_ID = "0"

# Request timeout in seconds
DEFAULT_TIMEOUT = 25

# === Schedule modes ===
SCHEDULE_RUN = 1
SCHEDULE_TEMPORARY_HOLD = 2
SCHEDULE_HOLD = 3

# === Session persistence ===
SESSION_KEY = "sessionId"
DEFAULT_SESSION_FILENAME = "session.json"
