"""NuHeat cloud thermostat client library."""

from .client import NuHeatClient
from .config import SESSION_KEY, KeyValueStore, SessionStore
from .exceptions import AuthError, EmptyResult, NuHeatConnectionError, NuHeatError
from .models import ThermostatState
from .units import c_to_f, f_to_c, from_api_temperature, to_api_temperature

__version__ = "0.1.0"

__all__ = [
    "NuHeatClient",
    "KeyValueStore",
    "SessionStore",
    "SESSION_KEY",
    "NuHeatError",
    "AuthError",
    "EmptyResult",
    "NuHeatConnectionError",
    "ThermostatState",
    "c_to_f",
    "f_to_c",
    "from_api_temperature",
    "to_api_temperature",
]
