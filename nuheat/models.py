"""Data models returned by the NuHeat client."""

from dataclasses import dataclass
from typing import Any, Optional

from .units import from_api_temperature


@dataclass(frozen=True)
class ThermostatState:
    """Live state of one thermostat, temperatures in degrees Celsius."""

    serial_number: str
    room: Optional[str]
    temperature: Optional[float]
    set_point: Optional[float]
    operating_mode: int
    heating: bool
    online: bool = True

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "ThermostatState":
        """Build a state from a ``/thermostat`` response body."""
        return cls(
            serial_number=str(payload.get("SerialNumber", "")),
            room=payload.get("Room"),
            temperature=from_api_temperature(payload.get("Temperature")),
            set_point=from_api_temperature(payload.get("SetPointTemp")),
            operating_mode=int(payload.get("OperatingMode") or 0),
            heating=bool(payload.get("Heating")),
            online=bool(payload.get("Online", True)),
        )
