"""
MQTT client module for the graph bridge.

This module wraps paho-mqtt with:
- Connection handling with timeout and automatic reconnection
- Thread-safe subscription and callback management
- Wildcard topic matching
- Raw payload delivery (bytes in, bytes out)
"""

import json
import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, bytes], None]


class MqttClient:
    """
    MQTT client used by the source and reaction services.

    Features:
    - Reconnection with exponential backoff (handled by the paho network loop)
    - Subscriptions survive reconnects and may be registered before connecting
    - Callbacks receive (topic, payload bytes) and run on the network thread
    - Wildcard support for + and #
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        clean_session: bool = True,
        keepalive: int = 60,
        reconnect_interval: float = 1.0,
        max_reconnect_interval: float = 60.0,
    ):
        """
        Initializes the MQTT client.

        Args:
                broker: MQTT broker hostname or IP
                port: MQTT broker port
                client_id: Unique client id (generated if None)
                username: MQTT username (optional)
                password: MQTT password (optional)
                clean_session: Whether the broker discards the session on connect
                keepalive: Keepalive interval in seconds
                reconnect_interval: Initial reconnect delay in seconds
                max_reconnect_interval: Maximum reconnect delay in seconds
        """
        self.broker = broker
        self.port = port
        self.username = username
        self.password = password
        self.clean_session = clean_session
        self.keepalive = keepalive

        self.client_id = client_id or f"mqtt_graph_bridge_{random.randint(1000, 9999)}_{int(time.time())}"

        self.reconnect_interval = reconnect_interval
        self.max_reconnect_interval = max_reconnect_interval

        self.client: Optional[mqtt.Client] = None
        self.connected = False
        self._connected_event = threading.Event()
        self._stop_requested = False

        # topic filter -> qos / callbacks
        self.subscriptions: Dict[str, int] = {}
        self.callbacks: Dict[str, List[MessageCallback]] = {}
        self._callback_lock = threading.RLock()

        self.stats = {
            "messages_sent": 0,
            "messages_received": 0,
            "connection_attempts": 0,
            "successful_connections": 0,
        }
        self._stats_lock = threading.Lock()

    def _create_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=self.clean_session,
            protocol=mqtt.MQTTv311,
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.reconnect_delay_set(
            min_delay=max(1, int(self.reconnect_interval)),
            max_delay=max(1, int(self.max_reconnect_interval)),
        )
        if self.username:
            client.username_pw_set(self.username, self.password)
        return client

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connects to the MQTT broker.

        Args:
                timeout: Maximum time to wait for the connection in seconds

        Returns:
                bool: True if the connection was established
        """
        if self.connected:
            logger.warning("Already connected")
            return True

        self._stop_requested = False
        self._connected_event.clear()
        self._count("connection_attempts")

        try:
            self.client = self._create_client()
            logger.info(f"Connecting to MQTT broker {self.broker}:{self.port}")
            self.client.connect(self.broker, self.port, keepalive=self.keepalive)
            self.client.loop_start()
        except Exception as e:
            logger.error(f"Error while connecting: {e}")
            return False

        if self._connected_event.wait(timeout):
            logger.info("MQTT connection established")
            self._count("successful_connections")
            return True

        logger.error("MQTT connection failed (timeout)")
        self._stop_requested = True
        self.client.loop_stop()
        return False

    def disconnect(self):
        """Disconnects from the MQTT broker."""
        self._stop_requested = True

        if self.client:
            try:
                self.client.disconnect()
                self.client.loop_stop()
                logger.info("MQTT connection closed")
            except Exception as e:
                logger.error(f"Error while disconnecting: {e}")

        self.connected = False
        self._connected_event.clear()

    def publish(self, topic: str, payload: Any, qos: int = 1, retain: bool = False) -> bool:
        """
        Publishes a message.

        Args:
                topic: MQTT topic
                payload: bytes, str, or dict/list (serialized as JSON)
                qos: Quality of service (0, 1 or 2)
                retain: Whether the broker keeps the message

        Returns:
                bool: True if the message was handed to the network loop
        """
        if not self.connected:
            logger.warning(f"Not connected - cannot publish to {topic}")
            return False

        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload)

        try:
            result = self.client.publish(topic, payload, qos=qos, retain=retain)
        except Exception as e:
            logger.error(f"Error publishing to {topic}: {e}")
            return False

        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            self._count("messages_sent")
            logger.debug(f"Published {len(payload) if payload else 0} bytes to {topic}")
            return True
        logger.error(f"Error publishing to {topic}: {mqtt.error_string(result.rc)}")
        return False

    def subscribe(self, topic: str, callback: Optional[MessageCallback] = None, qos: int = 1) -> bool:
        """
        Subscribes to a topic filter with an optional callback.

        The subscription is remembered and (re)issued on every connect, so it
        may be registered before connect() is called.

        Args:
                topic: MQTT topic filter (supports + and #)
                callback: Called with (topic, payload bytes) for each message
                qos: Quality of service

        Returns:
                bool: False if the broker rejected the subscribe request
        """
        with self._callback_lock:
            self.subscriptions[topic] = qos
            if callback:
                self.callbacks.setdefault(topic, [])
                if callback not in self.callbacks[topic]:
                    self.callbacks[topic].append(callback)

        if not self.connected:
            logger.debug(f"Subscription to {topic} deferred until connected")
            return True

        return self._send_subscribe(topic, qos)

    def unsubscribe(self, topic: str) -> bool:
        """
        Removes a subscription and its callbacks.

        Args:
                topic: MQTT topic filter

        Returns:
                bool: True on success
        """
        with self._callback_lock:
            self.subscriptions.pop(topic, None)
            self.callbacks.pop(topic, None)

        if not self.connected:
            return True

        try:
            result, _ = self.client.unsubscribe(topic)
        except Exception as e:
            logger.error(f"Error unsubscribing from {topic}: {e}")
            return False

        if result == mqtt.MQTT_ERR_SUCCESS:
            logger.info(f"Unsubscribed from {topic}")
            return True
        logger.error(f"Error unsubscribing from {topic}: {mqtt.error_string(result)}")
        return False

    def is_connected(self) -> bool:
        return self.connected

    def get_stats(self) -> Dict[str, int]:
        """
        Returns connection statistics.

        Returns:
                Dict with counters
        """
        with self._stats_lock:
            return self.stats.copy()

    def _count(self, name: str):
        with self._stats_lock:
            self.stats[name] += 1

    def _send_subscribe(self, topic: str, qos: int) -> bool:
        try:
            result, _ = self.client.subscribe(topic, qos)
        except Exception as e:
            logger.error(f"Error subscribing to {topic}: {e}")
            return False

        if result == mqtt.MQTT_ERR_SUCCESS:
            logger.info(f"Subscribed to {topic}")
            return True
        logger.error(f"Error subscribing to {topic}: {mqtt.error_string(result)}")
        return False

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Callback for connection results."""
        if reason_code.is_failure:
            logger.error(f"Connection refused: {reason_code}")
            return

        logger.info("Connected to MQTT broker")
        self.connected = True
        self._connected_event.set()
        self._restore_subscriptions()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        """Callback for lost or closed connections."""
        self.connected = False
        self._connected_event.clear()

        if reason_code.is_failure and not self._stop_requested:
            logger.warning(f"Unexpected disconnect ({reason_code}), reconnecting")
        else:
            logger.info("Connection closed")

    def _on_message(self, client, userdata, msg):
        """Callback for received messages."""
        self._count("messages_received")
        self.dispatch(msg.topic, msg.payload)

    def dispatch(self, topic: str, payload: bytes):
        """
        Runs every callback whose topic filter matches the topic.

        Args:
                topic: Topic the message arrived on
                payload: Raw payload bytes
        """
        with self._callback_lock:
            matching = [
                callback
                for pattern, callbacks in self.callbacks.items()
                if mqtt.topic_matches_sub(pattern, topic)
                for callback in callbacks
            ]

        for callback in matching:
            self._execute_callback(callback, topic, payload)

    def _execute_callback(self, callback: MessageCallback, topic: str, payload: bytes):
        """Runs a callback, isolating its errors."""
        try:
            callback(topic, payload)
        except Exception as e:
            logger.error(f"Error in callback for {topic}: {e}")

    def _restore_subscriptions(self):
        """Re-issues all subscriptions after (re)connecting."""
        with self._callback_lock:
            subscriptions = list(self.subscriptions.items())

        for topic, qos in subscriptions:
            self._send_subscribe(topic, qos)
