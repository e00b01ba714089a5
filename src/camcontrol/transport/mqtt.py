"""MQTT command/status transport.

Subscribes to the settings and action topics and publishes free-form
status strings on the status topic.

Threading:
    paho-mqtt runs its network loop in its own thread. Inbound messages
    are handed to the asyncio loop with call_soon_threadsafe; nothing in
    the controller ever runs on the paho thread. paho's publish() is
    thread-safe and is called directly from the loop.

TLS:
    Mutual TLS with a CA chain plus client certificate/key, TLS 1.2
    minimum. Unreadable certificates raise at startup.

Logging Strategy:
    DEBUG - Inbound messages
    INFO  - Connect/subscribe
    WARN  - Connection lost, publish while disconnected
    ERROR - Connect refused, subscribe failures
"""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import TYPE_CHECKING, Any

import paho.mqtt.client as mqtt

from ..models.settings import MqttSettings

if TYPE_CHECKING:
    from ..services.commands import CommandDispatcher

logger = logging.getLogger(__name__)


def create_tls_context(settings: MqttSettings) -> ssl.SSLContext:
    """Build the client TLS context.

    Raises:
        OSError: certificate files missing or unreadable
        ssl.SSLError: invalid certificate material
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=str(settings.ca_cert))
    context.load_cert_chain(certfile=str(settings.client_cert), keyfile=str(settings.client_key))
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


class MqttTransport:
    """paho-mqtt client bound to a CommandDispatcher.

    Attributes:
        settings: Broker and topic configuration
        connected: True between a successful CONNACK and a disconnect
    """

    def __init__(self, settings: MqttSettings) -> None:
        self.settings = settings
        self.connected = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._dispatcher: CommandDispatcher | None = None

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=settings.client_id
        )
        self._client.enable_logger(logging.getLogger("paho.mqtt"))
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        if settings.tls:
            self._client.tls_set_context(create_tls_context(settings))

    def bind(self, dispatcher: CommandDispatcher) -> None:
        self._dispatcher = dispatcher

    async def connect(self) -> None:
        """Start the network loop; subscriptions happen on CONNACK."""
        self._loop = asyncio.get_running_loop()
        logger.info(f"Connecting to MQTT broker {self.settings.host}:{self.settings.port}")
        self._client.connect_async(self.settings.host, self.settings.port, keepalive=self.settings.keepalive)
        self._client.loop_start()

    async def disconnect(self) -> None:
        self._client.disconnect()
        await asyncio.to_thread(self._client.loop_stop)
        self.connected = False
        logger.info("MQTT transport stopped")

    async def publish(self, message: str) -> None:
        """Publish one status string (QoS 0, not retained)."""
        info = self._client.publish(self.settings.status_topic, message, qos=0, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"Status not published (rc={info.rc}): {message}")

    # ========================================================================
    # paho callbacks (network thread)
    # ========================================================================

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            logger.error(f"MQTT connection refused: {reason_code}")
            return

        self.connected = True
        logger.info("Connected to MQTT Broker. Subscribing...")
        result, _ = client.subscribe([
            (self.settings.settings_topic, 0),
            (self.settings.action_topic, 0),
        ])
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Subscribe failed (rc={result})")
            return
        logger.info("Subscriptions successful. Ready.")

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self.connected = False
        logger.warning(f"Connection lost: {reason_code}")

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        payload = msg.payload.decode("utf-8", errors="replace")
        logger.debug(f"Message on {msg.topic}: {payload!r}")
        if self._loop is None:
            logger.warning(f"Dropping message on {msg.topic}: event loop not bound")
            return
        self._loop.call_soon_threadsafe(self.dispatch, msg.topic, payload)

    # ========================================================================
    # Dispatch (event loop)
    # ========================================================================

    def dispatch(self, topic: str, payload: str) -> None:
        """Route a payload by topic. Runs on the event loop thread."""
        if self._dispatcher is None:
            logger.warning(f"No dispatcher bound, dropping message on {topic}")
            return

        if topic == self.settings.settings_topic:
            self._dispatcher.handle_setting(payload)
        elif topic == self.settings.action_topic:
            self._dispatcher.handle_action(payload)
        else:
            logger.debug(f"Ignoring message on unexpected topic {topic}")
