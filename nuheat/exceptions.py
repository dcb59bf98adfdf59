"""Exceptions raised by the NuHeat client."""


class NuHeatError(Exception):
    """Base error for NuHeat cloud failures."""


class AuthError(NuHeatError):
    """The vendor rejected the credentials or the session."""


class EmptyResult(NuHeatError):
    """The vendor returned no usable data."""


class NuHeatConnectionError(NuHeatError):
    """The NuHeat cloud could not be reached."""
