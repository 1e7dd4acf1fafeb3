"""
Service base class for MQTT-facing bridge services.

Wraps an MqttClient and moves incoming messages from the paho network
thread onto the asyncio event loop, where registered topic handlers run.

Usage:
    from common.bridge_core.mqtt.service import MqttServiceBase

    class MyService(MqttServiceBase):
        async def setup_mqtt_subscriptions(self):
            self.register_topic_handler("sensors/#", self.handle_sensor)

        async def handle_sensor(self, topic: str, payload: bytes):
            ...
"""

from abc import ABC, abstractmethod
import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import paho.mqtt.client as mqtt

from ..config.config_model import MQTTSettings
from .client import MqttClient

logger = logging.getLogger(__name__)

TopicHandler = Callable[[str, bytes], Union[None, Awaitable[None]]]


class MqttTopics:
    """Topics the bridge itself publishes on."""

    @staticmethod
    def service_status(service_name: str) -> str:
        """
        Status topic of a service.

        Args:
            service_name: Name of the service

        Returns:
            Topic string for service status messages
        """
        return f"bridge/system/service/{service_name}"


class MqttServiceBase(ABC):
    """
    Base class for services with MQTT integration.

    Provides:
    - Connection handling with retries
    - Sync to async bridge for paho callbacks
    - Wildcard-aware topic handler registry
    - Status publishing on bridge/system/service/<name>
    """

    def __init__(
        self,
        service_name: str,
        mqtt_settings: Optional[MQTTSettings] = None,
        client_id: Optional[str] = None,
        client: Optional[MqttClient] = None,
        connection_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        """
        Initializes the service.

        Args:
            service_name: Name of the service (logging, status topic)
            mqtt_settings: Broker settings; defaults are used when None
            client_id: MQTT client id
            client: Pre-built client (tests inject a mock here)
            connection_retries: Connection attempts before giving up
            retry_delay: Pause between attempts in seconds
        """
        self.service_name = service_name
        self.mqtt_settings = mqtt_settings or MQTTSettings()
        self.logger = logging.getLogger(f"{__name__}.{service_name}")

        self.mqtt = client or self._create_mqtt_client(client_id)
        self.connection_retries = max(1, connection_retries)
        self.retry_delay = retry_delay

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._message_queue: Optional[asyncio.Queue] = None
        self._running = False
        self._tasks = []

        self._topic_handlers: Dict[str, TopicHandler] = {}

        self._status = "initializing"
        self._start_time = None

        self.logger.info(f"Service {service_name} initialized")

    def _create_mqtt_client(self, client_id: Optional[str]) -> MqttClient:
        settings = self.mqtt_settings
        return MqttClient(
            broker=settings.broker,
            port=settings.port,
            client_id=client_id,
            username=settings.username,
            password=settings.password,
            keepalive=settings.keepalive,
        )

    async def start_mqtt(self) -> bool:
        """
        Connects to the broker and starts message processing.

        Returns:
            True on success, False if no connection could be established
        """
        self.logger.info(f"Starting MQTT integration for {self.service_name}")

        self._loop = asyncio.get_running_loop()
        self._message_queue = asyncio.Queue()

        # Handlers are registered first so the client subscribes on connect
        await self.setup_mqtt_subscriptions()

        for attempt in range(self.connection_retries):
            if self.mqtt.connect():
                self.logger.info(f"MQTT connected on attempt {attempt + 1}")
                break
            if attempt < self.connection_retries - 1:
                self.logger.warning(f"MQTT connection attempt {attempt + 1} failed, retrying...")
                await asyncio.sleep(self.retry_delay)
        else:
            self.logger.error("MQTT connection failed after all retries")
            self._status = "error"
            return False

        self._running = True
        self._start_time = time.time()
        self._tasks.append(asyncio.create_task(self._process_message_queue()))

        await self.publish_status("ready", {"mqtt_connected": True})
        self.logger.info(f"MQTT integration started successfully for {self.service_name}")
        return True

    async def stop_mqtt(self):
        """Stops message processing and disconnects."""
        self.logger.info(f"Stopping MQTT integration for {self.service_name}")

        await self.publish_status("stopping")
        self._running = False

        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        try:
            self.mqtt.disconnect()
        except Exception as e:
            self.logger.error(f"Error disconnecting MQTT: {e}")

        self._status = "stopped"
        self.logger.info(f"MQTT integration stopped for {self.service_name}")

    def register_topic_handler(self, topic: str, handler: TopicHandler, qos: Optional[int] = None):
        """
        Registers a handler for a topic filter.

        Args:
            topic: MQTT topic filter (supports + and #)
            handler: Called with (topic, payload bytes); may be sync or async
            qos: Subscription QoS (default: configured QoS)
        """
        self._topic_handlers[topic] = handler
        self.mqtt.subscribe(
            topic,
            self._sync_callback_wrapper,
            qos=self.mqtt_settings.qos if qos is None else qos,
        )
        self.logger.debug(f"Registered handler for topic: {topic}")

    def _sync_callback_wrapper(self, topic: str, payload: bytes):
        """
        Hands a message from the network thread to the event loop.

        Args:
            topic: Topic the message arrived on
            payload: Raw payload bytes
        """
        if not self._running or self._loop is None:
            self.logger.debug(f"Dropping message on {topic}: service not running")
            return
        try:
            self._loop.call_soon_threadsafe(self._message_queue.put_nowait, (topic, payload))
        except RuntimeError as e:
            self.logger.error(f"Error in sync callback wrapper for {topic}: {e}")

    def _find_handler(self, topic: str) -> Optional[TopicHandler]:
        handler = self._topic_handlers.get(topic)
        if handler:
            return handler
        for pattern, candidate in self._topic_handlers.items():
            if mqtt.topic_matches_sub(pattern, topic):
                return candidate
        return None

    async def dispatch_message(self, topic: str, payload: bytes):
        """
        Runs the handler registered for a topic.

        Handler errors are logged and do not stop processing.

        Args:
            topic: Topic the message arrived on
            payload: Raw payload bytes
        """
        handler = self._find_handler(topic)
        if handler is None:
            self.logger.warning(f"No handler registered for topic: {topic}")
            return

        try:
            if asyncio.iscoroutinefunction(handler):
                await handler(topic, payload)
            else:
                handler(topic, payload)
        except Exception as e:
            self.logger.error(f"Error in topic handler for {topic}: {e}")

    async def _process_message_queue(self):
        """Processes queued messages until the service stops."""
        self.logger.debug("Message processing loop started")

        while self._running:
            try:
                topic, payload = await asyncio.wait_for(self._message_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            await self.dispatch_message(topic, payload)

        self.logger.debug("Message processing loop stopped")

    async def publish(self, topic: str, payload: Any, qos: Optional[int] = None, retain: bool = False) -> bool:
        """
        Publishes a message with error handling.

        Args:
            topic: MQTT topic
            payload: bytes, str or JSON-serializable dict
            qos: QoS level (default: configured QoS)
            retain: Retain flag

        Returns:
            True on success
        """
        try:
            success = self.mqtt.publish(
                topic,
                payload,
                qos=self.mqtt_settings.qos if qos is None else qos,
                retain=retain,
            )
        except Exception as e:
            self.logger.error(f"Error publishing to {topic}: {e}")
            return False

        if not success:
            self.logger.warning(f"MQTT publish failed for topic: {topic}")
        return success

    async def publish_status(self, status: str, details: Optional[Dict[str, Any]] = None):
        """
        Publishes the service status.

        Args:
            status: Status string ("ready", "stopping", ...)
            details: Additional fields
        """
        status_payload = {
            "service": self.service_name,
            "status": status,
            "timestamp": time.time(),
            "uptime": time.time() - self._start_time if self._start_time else 0,
            **(details or {}),
        }

        self._status = status
        await self.publish(MqttTopics.service_status(self.service_name), json.dumps(status_payload))

    def get_status(self) -> Dict[str, Any]:
        """
        Returns the current service status.

        Returns:
            Status dictionary
        """
        return {
            "service": self.service_name,
            "status": self._status,
            "uptime": time.time() - self._start_time if self._start_time else 0,
            "message_queue_size": self._message_queue.qsize() if self._message_queue else 0,
            "registered_topics": list(self._topic_handlers.keys()),
            "running": self._running,
        }

    @abstractmethod
    async def setup_mqtt_subscriptions(self):
        """
        Registers the service's topic handlers.

        Implementations call self.register_topic_handler(topic, handler).
        """
        pass
