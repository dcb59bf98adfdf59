"""Reconciles the hub's device set with the vendor's thermostats."""

import asyncio
import logging
from typing import Any

from nuheat import EmptyResult, NuHeatError

from .config import PARAM_SCALE, SCALE_FAHRENHEIT
from .context import NodeServerContext
from .nodes import ThermostatNode, ThermostatNodeC, ThermostatNodeF

logger = logging.getLogger(__name__)

# Pause between two device creations so the hub and the vendor are not flooded
DISCOVERY_DELAY = 1.0


class Reconciler:
    """Creates missing thermostat nodes and refreshes the known ones."""

    def __init__(self, context: NodeServerContext, discovery_delay: float = DISCOVERY_DELAY):
        self.context = context
        self.discovery_delay = discovery_delay

    @property
    def hub(self):
        return self.context.hub

    @property
    def client(self):
        return self.context.client

    async def _fetch_thermostats(self) -> list[dict[str, Any]]:
        """Return every thermostat entry of the vendor listing.

        Raises:
            EmptyResult: Listing missing or without groups
        """
        listing = await self.client.list_groups()
        groups = (listing or {}).get("Groups")
        if not groups:
            raise EmptyResult("Thermostat listing is empty")

        thermostats = []
        for group in groups:
            logger.info(f"Group: {group.get('groupName')}")
            thermostats.extend(group.get("Thermostats") or [])
        return thermostats

    async def _pause(self):
        await asyncio.sleep(self.discovery_delay)

    def _thermostat_class(self) -> type[ThermostatNode]:
        scale = self.hub.get_custom_param(PARAM_SCALE)
        return ThermostatNodeF if scale == SCALE_FAHRENHEIT else ThermostatNodeC

    async def discover(self) -> int:
        """Add a node for every vendor thermostat the hub does not know yet.

        Authentication or listing failures abort the pass; the next discovery
        tries again. Registration failures only skip the affected thermostat.

        Returns:
            Number of devices created
        """
        logger.info("Getting thermostats")
        try:
            await self.client.authenticate()
        except NuHeatError as e:
            logger.error(f"Discovery: authentication failed: {e}")
            return 0

        try:
            thermostats = await self._fetch_thermostats()
        except EmptyResult:
            logger.error("Discovery: no thermostats found")
            return 0
        except NuHeatError as e:
            logger.error(f"Discovery: thermostat listing failed: {e}")
            return 0

        # Scale is read once so a pass never mixes variants
        node_class = self._thermostat_class()
        known = self.hub.list_devices()
        created = 0
        attempted = 0

        for stat in thermostats:
            serial = stat.get("SerialNumber")
            if serial is None:
                logger.warning(f"Skipping thermostat without serial number: {stat}")
                continue
            address = str(serial)
            if address in known:
                logger.debug(f"Thermostat {address} already exists")
                continue

            if attempted:
                await self._pause()
            attempted += 1

            name = stat.get("Room") or address
            try:
                await self.hub.add_device(node_class(self.context, address, name))
            except Exception as e:
                logger.error(f"Add node {address} failed: {e}", exc_info=True)
                continue
            known[address] = self.hub.get_device(address)
            created += 1

        logger.info(f"Discovery done: {created} created, {attempted - created} failed")
        return created

    async def query_all(self):
        """Refresh every queryable node; one failing node never stops the rest."""
        for address, node in self.hub.list_devices().items():
            if not node.queryable:
                continue
            try:
                await node.query()
            except Exception as e:
                logger.error(f"Query of {address} failed: {e}", exc_info=True)
