"""Main bridge class for nuheat2mqtt."""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import aiohttp
import markdown
import paho.mqtt.client as mqtt

from nuheat import KeyValueStore, NuHeatClient, SessionStore

from .config import (
    DEFAULT_PARAMS,
    PARAM_PASSWORD,
    PARAM_USERNAME,
    get_state_dir,
    reconcile_params,
    validate_config,
)
from .context import NodeServerContext
from .hub import Hub
from .nodes import ControllerNode
from .poller import PollCoordinator, PollKind
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

CONFIG_DOC_PATH = Path(__file__).parent / "configdoc.md"

NOTICE_NEW_CONTROLLER = "newController"
NOTICE_TTL = 5


def render_config_doc(path: Path = CONFIG_DOC_PATH) -> str:
    """Render the configuration help shown in the hub UI to HTML."""
    return markdown.markdown(path.read_text(encoding="utf-8"))


class NuHeatBridge:
    """Bridge between the MQTT hub and the NuHeat cloud."""

    def __init__(self, config: dict):
        """Initialize the bridge.

        Args:
            config: Configuration dictionary
        """
        self.config = config
        self.running = False
        options = config.get("options", {})
        self.base_topic = config.get("mqtt", {}).get("base_topic", "nuheat2mqtt").rstrip("/")
        self.short_poll = options.get("short_poll", 60)
        self.long_poll = options.get("long_poll", 300)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._broker_client: Optional[mqtt.Client] = None
        self._connected: Optional[asyncio.Event] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._http: Optional[aiohttp.ClientSession] = None
        self._timers: list[asyncio.Task] = []

        self.hub: Optional[Hub] = None
        self.context: Optional[NodeServerContext] = None
        self.reconciler: Optional[Reconciler] = None
        self.coordinator: Optional[PollCoordinator] = None

    # Wiring

    def build(self, publish, http_session: aiohttp.ClientSession) -> NodeServerContext:
        """Construct the hub, vendor client, reconciler and poll coordinator."""
        options = self.config.get("options", {})
        state_dir = get_state_dir(self.config)

        storage = SessionStore(state_dir / "session.json")
        self.hub = Hub(publish, KeyValueStore(state_dir / "hub.json"), self.base_topic)
        client = NuHeatClient(http_session, storage)
        self.context = NodeServerContext(client, self.hub, storage)
        self.reconciler = Reconciler(self.context, options.get("discovery_delay", 1.0))
        self.coordinator = PollCoordinator(self.reconciler, options.get("poll_lock_timeout", 0.5))
        self.context.coordinator = self.coordinator
        return self.context

    def _setup_broker_client(self):
        """Set up MQTT broker client."""
        mqtt_config = self.config.get("mqtt", {})
        client_id = mqtt_config.get("client_id", "nuheat2mqtt")

        self._broker_client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)

        username = mqtt_config.get("username")
        password = mqtt_config.get("password")
        if username:
            self._broker_client.username_pw_set(username, password)

        self._broker_client.on_connect = self._on_broker_connect
        self._broker_client.on_disconnect = self._on_broker_disconnect
        self._broker_client.on_message = self._on_broker_message

        self._broker_client.will_set(
            f"{self.base_topic}/bridge/available",
            payload="offline",
            qos=1,
            retain=True,
        )

    def _publish(self, topic: str, payload: str, retain: bool = True) -> bool:
        """Publish to the broker; False when the message was not accepted."""
        if not self._broker_client:
            return False
        info = self._broker_client.publish(topic, payload, qos=1, retain=retain)
        logger.debug(f"Published: {topic} = {payload}")
        return info.rc == mqtt.MQTT_ERR_SUCCESS

    # MQTT callbacks (paho network thread)

    def _on_broker_connect(self, client, userdata, flags, reason_code, properties):
        """Handle broker connection."""
        if reason_code.is_failure:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            return

        logger.info("Connected to MQTT broker")
        client.subscribe([
            (f"{self.base_topic}/+/set/+", 1),
            (f"{self.base_topic}/bridge/delete", 1),
        ])
        logger.info(f"Subscribed to command topics: {self.base_topic}/+/set/#")
        client.publish(f"{self.base_topic}/bridge/available", "online", qos=1, retain=True)

        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._on_connected)

    def _on_connected(self):
        first = not self._connected.is_set()
        self._connected.set()
        if not first and self.hub is not None:
            logger.info("Reconnected, republishing nodes")
            self.hub.republish()

    def _on_broker_disconnect(self, client, userdata, flags, reason_code, properties):
        """Handle broker disconnection."""
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")

    def _on_broker_message(self, client, userdata, msg):
        """Handle incoming MQTT messages."""
        topic = msg.topic
        try:
            payload = msg.payload.decode("utf-8").strip()
        except UnicodeDecodeError:
            logger.warning(f"Ignoring undecodable payload on {topic}")
            return

        logger.debug(f"Received: {topic} = {payload}")
        if self._loop is None:
            return

        parts = topic[len(self.base_topic) + 1:].split("/")
        if parts == ["bridge", "delete"]:
            coro = self.on_delete_requested()
        elif len(parts) == 3 and parts[1] == "set":
            coro = self.on_command_received(parts[0], parts[2], payload or None)
        else:
            logger.debug(f"Ignoring message on {topic}")
            return

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        future.add_done_callback(self._log_future_error)

    @staticmethod
    def _log_future_error(future):
        if not future.cancelled() and future.exception() is not None:
            exc = future.exception()
            logger.error(f"Error handling message: {exc}", exc_info=(type(exc), exc, exc.__traceback__))

    # Lifecycle events

    async def on_config_loaded(
        self,
        is_initial: bool,
        node_count: int,
        custom_params: dict,
        new_params_detected: bool,
    ):
        """Handle a configuration load from the hub."""
        logger.info(f"Config received has {node_count} nodes")
        if not is_initial:
            return

        self.hub.remove_all_notices()

        try:
            self.hub.set_profile_document(render_config_doc())
        except OSError as e:
            logger.error(f"Could not read configuration document: {e}")

        params, needs_save = reconcile_params(custom_params, DEFAULT_PARAMS)
        if needs_save:
            self.hub.save_custom_params(params)
        self.context.client.update_credentials(params.get(PARAM_USERNAME), params.get(PARAM_PASSWORD))

        if not node_count:
            logger.info("Auto-creating controller")
            try:
                await self.hub.add_device(ControllerNode(self.context))
            except Exception as e:
                logger.error(f"Error creating controller node: {e}", exc_info=True)
            self.hub.post_notice(NOTICE_NEW_CONTROLLER, "Controller node initialized", NOTICE_TTL)

        if new_params_detected:
            logger.info("New parameters detected")

    async def on_poll_tick(self, is_long: bool):
        self.coordinator.trigger(PollKind.LONG if is_long else PollKind.SHORT)

    async def on_shutdown_requested(self):
        """Graceful stop: final short and long poll, then tear down."""
        logger.info("Graceful stop")
        self._cancel_timers()
        if self.coordinator is not None:
            await self.coordinator.shutdown()
        await self.stop()

    async def on_delete_requested(self):
        logger.info("Node server is being deleted")
        self.hub.remove_all_notices()
        self.request_stop()

    async def on_command_received(self, address: str, command: str, payload: Optional[str]):
        """Dispatch an inbound command to the addressed node."""
        logger.info(f"Command: {address} {command} = {payload}")
        node = self.hub.get_device(address)
        if node is None:
            logger.warning(f"Command for unknown node: {address}")
            return
        handler = node.commands.get(command)
        if handler is None:
            logger.warning(f"Unknown command {command} for {address}")
            return
        try:
            await handler(payload)
        except Exception as e:
            logger.error(f"Error handling {command} for {address}: {e}", exc_info=True)

    # Timers

    async def _poll_timer(self, interval: float, is_long: bool):
        logger.info(f"{'Long' if is_long else 'Short'} poll timer started (interval: {interval}s)")
        while self.running:
            await asyncio.sleep(interval)
            await self.on_poll_tick(is_long)

    def _cancel_timers(self):
        for task in self._timers:
            task.cancel()
        self._timers = []

    # Process control

    def _merge_user_params(self) -> bool:
        """Apply parameters from the config file over the persisted ones.

        Returns:
            True when this changed the persisted parameters
        """
        user_params = {k: str(v) for k, v in (self.config.get("params") or {}).items() if v is not None}
        current = self.hub.custom_params
        merged = {**current, **user_params}
        if merged == current:
            return False
        self.hub.save_custom_params(merged)
        return True

    async def start(self):
        """Start the bridge."""
        logger.info("Starting nuheat2mqtt bridge...")

        errors = validate_config(self.config)
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            raise ValueError("Invalid configuration")

        self._loop = asyncio.get_running_loop()
        self._loop.set_exception_handler(_log_uncaught_loop_exception)
        self._connected = asyncio.Event()
        if self._stop_requested is None:
            self._stop_requested = asyncio.Event()
        self.running = True

        self._http = aiohttp.ClientSession()
        self.build(self._publish, self._http)

        self._setup_broker_client()
        mqtt_config = self.config.get("mqtt", {})
        host = mqtt_config.get("host", "localhost")
        port = mqtt_config.get("port", 1883)
        reconnect_interval = self.config.get("options", {}).get("reconnect_interval", 30)

        logger.info(f"Connecting to MQTT broker at {host}:{port}")
        while self.running:
            try:
                self._broker_client.connect(host, port, keepalive=60)
                self._broker_client.loop_start()
                break
            except OSError as e:
                logger.error(f"Failed to connect to MQTT broker: {e}")
                logger.info(f"Retrying in {reconnect_interval} seconds...")
                await self._wait_for_stop(reconnect_interval)

        if self.running:
            await self._wait_connected()
        if not self.running:
            logger.info("Stop requested before the broker accepted the connection")
            return

        node_count = self.hub.restore_devices(self.context)
        new_params = self._merge_user_params()
        self.hub.republish()

        await self.on_config_loaded(True, node_count, self.hub.custom_params, new_params)

        self._timers = [
            asyncio.create_task(self._poll_timer(self.short_poll, False), name="short_poll"),
            asyncio.create_task(self._poll_timer(self.long_poll, True), name="long_poll"),
        ]
        logger.info("nuheat2mqtt bridge started")

    async def _wait_for_stop(self, timeout: float):
        try:
            await asyncio.wait_for(self._stop_requested.wait(), timeout)
        except asyncio.TimeoutError:
            pass

    async def _wait_connected(self):
        """Wait for the broker's CONNACK; a stop request ends the wait early."""
        waiters = [
            asyncio.create_task(self._connected.wait(), name="broker_connected"),
            asyncio.create_task(self._stop_requested.wait(), name="stop_requested"),
        ]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def stop(self):
        """Stop the bridge."""
        logger.info("Stopping nuheat2mqtt bridge...")
        self.running = False
        self._cancel_timers()

        if self.context is not None:
            await self.context.close()

        if self._broker_client:
            self._publish(f"{self.base_topic}/bridge/available", "offline")
            self._broker_client.loop_stop()
            self._broker_client.disconnect()

        if self._http is not None:
            await self._http.close()
            self._http = None

        logger.info("nuheat2mqtt bridge stopped")

    def request_stop(self):
        """Ask ``run`` to shut down gracefully."""
        self.running = False
        if self._stop_requested is not None:
            self._stop_requested.set()

    async def run(self):
        """Run the bridge until a stop is requested."""
        self._stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self.request_stop)

        await self.start()
        await self._stop_requested.wait()
        await self.on_shutdown_requested()

    def run_forever(self):
        """Run the bridge until interrupted."""
        sys.excepthook = _log_uncaught_exception
        asyncio.run(self.run())


def _log_uncaught_exception(exc_type, exc, tb):
    logger.error("Uncaught exception, please report this!", exc_info=(exc_type, exc, tb))


def _log_uncaught_loop_exception(loop, context):
    exc = context.get("exception")
    message = context.get("message", "Unhandled error in event loop")
    if exc is not None:
        logger.error(f"Uncaught exception, please report this! {message}", exc_info=(type(exc), exc, exc.__traceback__))
    else:
        logger.error(f"Uncaught exception, please report this! {message}")
