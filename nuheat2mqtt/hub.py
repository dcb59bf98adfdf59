"""Hub adapter: device registry, custom parameters and notices over MQTT.

The hub owns the canonical device tree. This adapter keeps the registry of
virtual devices, persists it next to the custom parameters, and mirrors every
change to retained MQTT topics under the configured base topic.
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from nuheat import KeyValueStore

from .exceptions import RegistryWriteError
from .nodes import NODE_CLASSES, Node

if TYPE_CHECKING:
    from .context import NodeServerContext

logger = logging.getLogger(__name__)

# publish(topic, payload, retain) -> True when the message was accepted
Publisher = Callable[[str, str, bool], bool]

STATE_NODES = "nodes"
STATE_CUSTOM_PARAMS = "custom_params"


class Hub:
    """Device registry and configuration store mirrored to MQTT."""

    def __init__(self, publish: Publisher, store: KeyValueStore, base_topic: str = "nuheat2mqtt"):
        """Initialize the hub adapter.

        Args:
            publish: Callable sending one message to the broker
            store: Durable store for the node list and custom parameters
            base_topic: Root of every topic this adapter publishes
        """
        self._publish = publish
        self._store = store
        self.base_topic = base_topic.rstrip("/")
        self._nodes: dict[str, Node] = {}
        self._notices: dict[str, str] = {}
        self._notice_timers: dict[str, asyncio.TimerHandle] = {}
        self._profile_document: Optional[str] = None

    # Topics

    def node_topic(self, address: str, *parts: str) -> str:
        return "/".join((self.base_topic, address) + parts)

    def bridge_topic(self, *parts: str) -> str:
        return "/".join((self.base_topic, "bridge") + parts)

    def _send(self, topic: str, payload: Any, retain: bool = True) -> bool:
        if not isinstance(payload, str):
            payload = json.dumps(payload)
        ok = self._publish(topic, payload, retain)
        if not ok:
            logger.warning(f"Publish failed: {topic}")
        return ok

    # Device registry

    def list_devices(self) -> dict[str, Node]:
        """Snapshot of the known devices keyed by address."""
        return dict(self._nodes)

    def get_device(self, address: str) -> Optional[Node]:
        return self._nodes.get(address)

    async def add_device(self, node: Node) -> str:
        """Register a new device and announce it to the hub.

        A device that cannot be persisted is withdrawn again, so a failed
        registration leaves neither a registry entry nor a retained config.

        Raises:
            RegistryWriteError: Address already registered, publish or persist failed
        """
        if node.address in self._nodes:
            raise RegistryWriteError(f"Node {node.address} already exists")
        if not self._send(self.node_topic(node.address, "config"), node.describe()):
            raise RegistryWriteError(f"Could not announce node {node.address}")

        self._nodes[node.address] = node
        try:
            await self._persist_nodes()
        except OSError as e:
            del self._nodes[node.address]
            self._send(self.node_topic(node.address, "config"), "")
            raise RegistryWriteError(f"Could not persist node {node.address}: {e}") from e
        logger.info(f"Added node {node.address} ({node.node_def_id}): {node.name}")
        return node.address

    async def remove_device(self, address: str):
        """Forget a device and clear its retained topics."""
        node = self._nodes.pop(address, None)
        if node is None:
            logger.warning(f"Remove requested for unknown node {address}")
            return
        self._send(self.node_topic(address, "config"), "")
        for driver in node.drivers:
            self._send(self.node_topic(address, "state", driver), "")
        await self._persist_nodes()
        logger.info(f"Removed node {address}")

    def report_driver(self, node: Node, driver: str):
        """Publish one driver value.

        Raises:
            RegistryWriteError: Publish failed
        """
        value = node.drivers[driver].value
        if not self._send(self.node_topic(node.address, "state", driver), str(value)):
            raise RegistryWriteError(f"Could not write {driver} for {node.address}")

    async def _persist_nodes(self):
        nodes = {
            address: {"node_def_id": node.node_def_id, "name": node.name}
            for address, node in self._nodes.items()
        }
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._store.set, STATE_NODES, nodes)

    def restore_devices(self, context: "NodeServerContext") -> int:
        """Recreate the persisted devices with their original variant.

        Returns:
            Number of devices restored
        """
        for address, record in (self._store.get(STATE_NODES) or {}).items():
            node_class = NODE_CLASSES.get(record.get("node_def_id"))
            if node_class is None:
                logger.warning(f"Skipping node {address} with unknown type {record.get('node_def_id')}")
                continue
            self._nodes[address] = node_class(context, address, record.get("name") or address)
        return len(self._nodes)

    def republish(self):
        """Re-announce every node and driver, e.g. after a broker reconnect."""
        for address, node in self._nodes.items():
            self._send(self.node_topic(address, "config"), node.describe())
            for driver, state in node.drivers.items():
                self._send(self.node_topic(address, "state", driver), str(state.value))
        for notice_id, text in self._notices.items():
            self._send(self.bridge_topic("notices", notice_id), text)
        if self._profile_document is not None:
            self._send(self.bridge_topic("config_doc"), self._profile_document)

    # Custom parameters

    @property
    def custom_params(self) -> dict[str, str]:
        return dict(self._store.get(STATE_CUSTOM_PARAMS) or {})

    def get_custom_param(self, name: str) -> Optional[str]:
        return self.custom_params.get(name)

    def save_custom_params(self, params: dict[str, str]):
        """Replace the persisted custom parameters."""
        self._store.set(STATE_CUSTOM_PARAMS, dict(params))
        redacted = {key: ("***" if "password" in key.lower() else value) for key, value in params.items()}
        self._send(self.bridge_topic("params"), redacted)
        logger.info(f"Saved custom params: {sorted(params)}")

    # Documents and profile

    def set_profile_document(self, html: str):
        """Publish the configuration help shown in the hub UI."""
        self._profile_document = html
        self._send(self.bridge_topic("config_doc"), html)

    def update_profile(self):
        """Publish the node definitions the hub uses to render devices."""
        profile = {}
        for node_def_id, node_class in NODE_CLASSES.items():
            profile[node_def_id] = {
                "drivers": {name: driver.uom for name, driver in node_class.initial_drivers().items()},
                "queryable": node_class.queryable,
            }
        self._send(self.bridge_topic("profile"), profile)
        logger.info("Profile updated")

    # Notices

    @property
    def notices(self) -> dict[str, str]:
        return dict(self._notices)

    def post_notice(self, notice_id: str, text: str, ttl_seconds: Optional[float] = None):
        """Show a notice in the hub UI, optionally removed after ``ttl_seconds``."""
        self._cancel_notice_timer(notice_id)
        self._notices[notice_id] = text
        self._send(self.bridge_topic("notices", notice_id), text)
        if ttl_seconds:
            loop = asyncio.get_running_loop()
            self._notice_timers[notice_id] = loop.call_later(
                ttl_seconds, self.remove_notice, notice_id
            )

    def remove_notice(self, notice_id: str):
        self._cancel_notice_timer(notice_id)
        if self._notices.pop(notice_id, None) is not None:
            self._send(self.bridge_topic("notices", notice_id), "")

    def remove_all_notices(self):
        for notice_id in list(self._notices):
            self.remove_notice(notice_id)

    def _cancel_notice_timer(self, notice_id: str):
        handle = self._notice_timers.pop(notice_id, None)
        if handle is not None:
            handle.cancel()
