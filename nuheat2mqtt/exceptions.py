"""Exceptions raised inside the bridge."""


class PollBusy(Exception):
    """A reconciliation pass is still running and the lock wait timed out."""


class RegistryWriteError(Exception):
    """A device could not be registered or one of its drivers not written."""
