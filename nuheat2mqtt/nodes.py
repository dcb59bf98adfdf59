"""Virtual devices exposed to the hub.

Three variants exist: the controller and a thermostat per temperature scale.
A thermostat's scale is fixed when it is created; switching scale means
removing the node and adding it back as the other variant.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from nuheat import c_to_f, f_to_c

if TYPE_CHECKING:
    from .context import NodeServerContext

logger = logging.getLogger(__name__)

# Units of measure understood by the hub
UOM_BOOLEAN = 2
UOM_CELSIUS = 4
UOM_FAHRENHEIT = 17
UOM_THERMOSTAT_MODE = 25
UOM_HEAT_COOL_STATE = 66

# Driver names
DRIVER_STATUS = "ST"
DRIVER_HEAT_SETPOINT = "CLISPH"
DRIVER_MODE = "CLIMD"
DRIVER_HEAT_COOL_STATE = "CLIHCS"

# Command names
CMD_QUERY = "QUERY"
CMD_DISCOVER = "DISCOVER"
CMD_UPDATE_PROFILE = "UPDATE_PROFILE"
CMD_REMOVE_NOTICES = "REMOVE_NOTICES"
CMD_SET_HEAT_SETPOINT = "CLISPH"

# Reported in CLIHCS on every successful query
HEAT_COOL_STATE_HEATING = 1

CONTROLLER_ADDRESS = "controller"
CONTROLLER_NAME = "NuHeat"

CommandHandler = Callable[[Optional[str]], Awaitable[None]]


@dataclass
class Driver:
    """A named observable value reported to the hub."""

    value: Union[int, float, str]
    uom: int


class Node:
    """Base class for every virtual device."""

    node_def_id: str = ""
    queryable = False

    def __init__(self, context: "NodeServerContext", address: str, name: str):
        self.context = context
        self.address = address
        self.name = name
        self.drivers: dict[str, Driver] = self.initial_drivers()
        self.commands: dict[str, CommandHandler] = self._command_table()

    @classmethod
    def initial_drivers(cls) -> dict[str, Driver]:
        return {}

    def _command_table(self) -> dict[str, CommandHandler]:
        return {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.address} {self.name!r}>"

    def get_driver(self, driver: str) -> Driver:
        return self.drivers[driver]

    def set_driver(self, driver: str, value: Any, report: bool = True):
        """Update a driver value and report it to the hub.

        Raises:
            KeyError: Unknown driver for this variant
            RegistryWriteError: The hub rejected the write
        """
        self.drivers[driver].value = value
        if report:
            self.context.hub.report_driver(self, driver)

    def report_drivers(self):
        """Send every driver value to the hub."""
        for driver in self.drivers:
            self.context.hub.report_driver(self, driver)

    def describe(self) -> dict[str, Any]:
        """Node definition published to the hub."""
        return {
            "address": self.address,
            "name": self.name,
            "node_def_id": self.node_def_id,
            "drivers": {name: {"value": d.value, "uom": d.uom} for name, d in self.drivers.items()},
            "commands": sorted(self.commands),
        }


class ControllerNode(Node):
    """Holds the node server status and its control buttons."""

    node_def_id = "CONTROLLER"

    def __init__(
        self,
        context: "NodeServerContext",
        address: str = CONTROLLER_ADDRESS,
        name: str = CONTROLLER_NAME,
    ):
        super().__init__(context, address, name)

    @classmethod
    def initial_drivers(cls) -> dict[str, Driver]:
        return {DRIVER_STATUS: Driver(1, UOM_BOOLEAN)}

    def _command_table(self) -> dict[str, CommandHandler]:
        return {
            CMD_DISCOVER: self.on_discover,
            CMD_UPDATE_PROFILE: self.on_update_profile,
            CMD_REMOVE_NOTICES: self.on_remove_notices,
            CMD_QUERY: self.on_query,
        }

    async def on_discover(self, payload: Optional[str] = None):
        created = await self.context.coordinator.discover()
        logger.info(f"Discovery created {created} thermostat(s)")

    async def on_update_profile(self, payload: Optional[str] = None):
        self.context.hub.update_profile()

    async def on_remove_notices(self, payload: Optional[str] = None):
        self.context.hub.remove_all_notices()

    async def on_query(self, payload: Optional[str] = None):
        self.report_drivers()


class ThermostatNode(Node):
    """A NuHeat thermostat; subclasses fix the display unit."""

    queryable = True
    display_uom = UOM_CELSIUS

    @classmethod
    def initial_drivers(cls) -> dict[str, Driver]:
        return {
            DRIVER_STATUS: Driver(0, cls.display_uom),
            DRIVER_HEAT_SETPOINT: Driver(0, cls.display_uom),
            DRIVER_MODE: Driver(0, UOM_THERMOSTAT_MODE),
            DRIVER_HEAT_COOL_STATE: Driver(0, UOM_HEAT_COOL_STATE),
        }

    def _command_table(self) -> dict[str, CommandHandler]:
        return {
            CMD_QUERY: self.on_query,
            CMD_SET_HEAT_SETPOINT: self.on_set_heat_setpoint,
        }

    def to_display(self, celsius: float) -> float:
        """Convert a vendor Celsius reading to this node's unit."""
        raise NotImplementedError

    def from_display(self, value: float) -> float:
        """Convert a value in this node's unit to vendor Celsius."""
        raise NotImplementedError

    async def query(self):
        """Fetch live state from the vendor and write it to the drivers.

        An empty answer means the session expired: a re-authentication is
        started in the background and nothing is written this cycle. Its
        result is not awaited; the next short poll uses the new session.
        """
        state = await self.context.client.fetch_device(self.address)
        if state is None:
            logger.error(f"No data for thermostat {self.address}, re-authenticating...")
            self.context.reauthenticate()
            return

        logger.debug(
            f"Thermostat {self.address}: temperature={state.temperature} "
            f"set_point={state.set_point} mode={state.operating_mode} heating={state.heating}"
        )
        temperature = self.to_display(state.temperature) if state.temperature is not None else 0
        set_point = self.to_display(state.set_point) if state.set_point is not None else 0

        self.set_driver(DRIVER_STATUS, temperature)
        self.set_driver(DRIVER_HEAT_SETPOINT, set_point)
        self.set_driver(DRIVER_MODE, state.operating_mode)
        self.set_driver(DRIVER_HEAT_COOL_STATE, HEAT_COOL_STATE_HEATING)

    async def on_query(self, payload: Optional[str] = None):
        await self.context.coordinator.query_node(self)

    async def on_set_heat_setpoint(self, payload: Optional[str] = None):
        """Set the heat set-point, updating the driver optimistically.

        The vendor write runs in the background; the driver takes the new
        value at once and the next query corrects any divergence.
        """
        try:
            value = float(payload)
        except (TypeError, ValueError):
            logger.error(f"Invalid set-point for {self.address}: {payload!r}")
            return

        logger.info(f"Set heat set-point {self.address}: {value}")
        celsius = self.from_display(value)
        self.context.spawn(
            self.context.client.write_setpoint(self.address, celsius),
            name=f"write_setpoint_{self.address}",
        )
        self.set_driver(DRIVER_HEAT_SETPOINT, value)


class ThermostatNodeF(ThermostatNode):
    """Thermostat displayed in Fahrenheit."""

    node_def_id = "THERMOSTAT_F"
    display_uom = UOM_FAHRENHEIT

    def to_display(self, celsius: float) -> float:
        return round(c_to_f(celsius), 1)

    def from_display(self, value: float) -> float:
        return f_to_c(value)


class ThermostatNodeC(ThermostatNode):
    """Thermostat displayed in Celsius."""

    node_def_id = "THERMOSTAT_C"
    display_uom = UOM_CELSIUS

    def to_display(self, celsius: float) -> float:
        return round(celsius, 2)

    def from_display(self, value: float) -> float:
        return value


NODE_CLASSES: dict[str, type[Node]] = {
    cls.node_def_id: cls for cls in (ControllerNode, ThermostatNodeF, ThermostatNodeC)
}
