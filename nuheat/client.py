"""NuHeat cloud thermostat client.

Provides async access to the NuHeat (mynuheat.com) session-authenticated
HTTP API: login, thermostat listing, per-thermostat state and set-point writes.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from .config import (
    API_BASE,
    APPLICATION_ID,
    AUTH_PATH,
    DEFAULT_TIMEOUT,
    SCHEDULE_HOLD,
    THERMOSTAT_PATH,
    THERMOSTATS_PATH,
    SessionStore,
)
from .exceptions import AuthError, NuHeatConnectionError, NuHeatError
from .models import ThermostatState
from .units import to_api_temperature

_LOGGER = logging.getLogger(__name__)

_UNAUTHORIZED = (401, 403)


class NuHeatClient:
    """Thin async client for the NuHeat cloud.

    The session token is kept in a :class:`SessionStore` so a token issued
    before a restart is reused. Session expiry is not observable directly;
    it shows up as an empty answer from ``list_groups`` or ``fetch_device``.

    Example usage:
        async with aiohttp.ClientSession() as session:
            client = NuHeatClient(session, SessionStore(), "me@example.com", "pw")
            await client.authenticate()
            state = await client.fetch_device("12345")
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        storage: SessionStore,
        username: Optional[str] = None,
        password: Optional[str] = None,
        api_base: str = API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the client.

        Args:
            session: Shared aiohttp session (owned by the caller)
            storage: Session store holding the cached token
            username: Account e-mail
            password: Account password
            api_base: API root URL
            timeout: Total request timeout in seconds
        """
        self._session = session
        self._storage = storage
        self._username = username
        self._password = password
        self._api_base = api_base.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def session_id(self) -> Optional[str]:
        """Currently cached session token."""
        return self._storage.get_session()

    def update_credentials(self, username: Optional[str], password: Optional[str]):
        """Replace the account credentials used by ``authenticate``."""
        self._username = username
        self._password = password

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs,
    ) -> tuple[int, Any]:
        """Perform an HTTP request.

        Returns:
            Tuple of (status, body) where body is decoded JSON, or None when
            the response is empty or not JSON.
        """
        url = f"{self._api_base}{path}"
        _LOGGER.debug("HTTP %s %s", method, url)
        try:
            async with self._session.request(
                method, url, timeout=self._timeout, **kwargs
            ) as resp:
                status = resp.status
                text = await resp.text()
                _LOGGER.debug("HTTP %s -> %s", url, status)
                if not text or not text.strip():
                    return status, None
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    _LOGGER.debug("Non-JSON body from %s", url)
                    body = None
                return status, body
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NuHeatConnectionError(f"{method} {path} failed: {e}") from e

    async def authenticate(self) -> str:
        """Log in and persist a fresh session token.

        Returns:
            The new session token

        Raises:
            AuthError: Credentials missing or rejected
        """
        if not self._username or not self._password:
            raise AuthError("No NuHeat credentials configured")

        data = {
            "Email": self._username,
            "password": self._password,
            "application": APPLICATION_ID,
        }
        status, body = await self._request("POST", AUTH_PATH, data=data)

        if status in _UNAUTHORIZED:
            raise AuthError(f"Login rejected (status {status})")
        if status >= 400:
            raise NuHeatError(f"Login failed (status {status})")

        session_id = body.get("SessionId") if isinstance(body, dict) else None
        if not session_id:
            error_code = body.get("ErrorCode") if isinstance(body, dict) else None
            raise AuthError(f"Login returned no session (error code {error_code})")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._storage.save_session, session_id)
        _LOGGER.info("Authenticated with NuHeat")
        return session_id

    async def list_groups(self) -> Optional[dict[str, Any]]:
        """Fetch the account's thermostat groups.

        Returns:
            Dict with a ``Groups`` list, or None when the session is missing
            or expired or the vendor returned nothing.
        """
        session_id = self.session_id
        if not session_id:
            _LOGGER.debug("No session cached, skipping thermostat listing")
            return None

        status, body = await self._request(
            "GET", THERMOSTATS_PATH, params={"sessionid": session_id}
        )
        if status in _UNAUTHORIZED:
            _LOGGER.debug("Thermostat listing unauthorized (status %s)", status)
            return None
        if status >= 400:
            raise NuHeatError(f"Thermostat listing failed (status {status})")
        if not isinstance(body, dict):
            return None
        return body

    async def fetch_device(self, address: str) -> Optional[ThermostatState]:
        """Fetch the live state of one thermostat.

        Args:
            address: Thermostat serial number

        Returns:
            ThermostatState, or None when the session is missing or expired
            or the vendor returned nothing.
        """
        session_id = self.session_id
        if not session_id:
            return None

        status, body = await self._request(
            "GET",
            THERMOSTAT_PATH,
            params={"sessionid": session_id, "serialnumber": address},
        )
        if status in _UNAUTHORIZED:
            _LOGGER.debug("Thermostat %s fetch unauthorized (status %s)", address, status)
            return None
        if status >= 400:
            raise NuHeatError(f"Thermostat {address} fetch failed (status {status})")
        if not isinstance(body, dict) or not body:
            return None
        return ThermostatState.from_api(body)

    async def write_setpoint(self, address: str, celsius: float):
        """Hold a new heat set-point on one thermostat.

        Args:
            address: Thermostat serial number
            celsius: Target temperature in degrees Celsius

        Raises:
            AuthError: No session cached or session rejected
        """
        session_id = self.session_id
        if not session_id:
            raise AuthError("No session cached")

        data = {
            "SetPointTemp": to_api_temperature(celsius),
            "ScheduleMode": SCHEDULE_HOLD,
        }
        status, _ = await self._request(
            "POST",
            THERMOSTAT_PATH,
            params={"sessionid": session_id, "serialnumber": address},
            data=data,
        )
        if status in _UNAUTHORIZED:
            raise AuthError(f"Set-point write rejected (status {status})")
        if status >= 400:
            raise NuHeatError(f"Set-point write for {address} failed (status {status})")
        _LOGGER.info("Set-point for %s set to %.2f C", address, celsius)
