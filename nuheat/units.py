"""Temperature conversions.

The cloud API carries temperatures as integer hundredths of a degree Celsius.
"""

from typing import Optional


def c_to_f(celsius: float) -> float:
    """Convert Celsius to Fahrenheit."""
    return celsius * 9.0 / 5.0 + 32.0


def f_to_c(fahrenheit: float) -> float:
    """Convert Fahrenheit to Celsius."""
    return (fahrenheit - 32.0) * 5.0 / 9.0


def from_api_temperature(value: Optional[int]) -> Optional[float]:
    """Convert an API temperature (1/100 degC) to degrees Celsius."""
    if value is None:
        return None
    return int(value) / 100.0


def to_api_temperature(celsius: float) -> int:
    """Convert degrees Celsius to an API temperature (1/100 degC)."""
    return int(round(celsius * 100))
