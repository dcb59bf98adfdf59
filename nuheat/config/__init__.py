"""Configuration constants and session storage for the NuHeat client."""

from .constants import (
    API_BASE,
    AUTH_PATH,
    THERMOSTATS_PATH,
    THERMOSTAT_PATH,
    APPLICATION_ID,
    DEFAULT_TIMEOUT,
    SCHEDULE_RUN,
    SCHEDULE_TEMPORARY_HOLD,
    SCHEDULE_HOLD,
    SESSION_KEY,
    DEFAULT_SESSION_FILENAME,
)
from .storage import KeyValueStore, SessionStore

__all__ = [
    "API_BASE",
    "AUTH_PATH",
    "THERMOSTATS_PATH",
    "THERMOSTAT_PATH",
    "APPLICATION_ID",
    "DEFAULT_TIMEOUT",
    "SCHEDULE_RUN",
    "SCHEDULE_TEMPORARY_HOLD",
    "SCHEDULE_HOLD",
    "SESSION_KEY",
    "DEFAULT_SESSION_FILENAME",
    "KeyValueStore",
    "SessionStore",
]
