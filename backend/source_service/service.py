"""
MQTT source service

Subscribes to the configured topic filter, maps every message to a graph
change operation and hands it to a ChangeSink. Messages that cannot be
mapped are counted and logged; the subscription keeps running.
"""

from abc import ABC, abstractmethod
import json
import logging
import sys
import threading
from typing import Any, Dict, Optional, TextIO

from common.bridge_core.config.config_model import MQTTSettings, SourceSettings
from common.bridge_core.errors import MapError, MissingIdField, ParseError, UnsupportedPropertyShape
from common.bridge_core.ingest import ChangeKind, ChangeOp, IdentityRegistry, IngestionMapper
from common.bridge_core.mqtt.client import MqttClient
from common.bridge_core.mqtt.service import MqttServiceBase

logger = logging.getLogger(__name__)


class ChangeSink(ABC):
    """Receives the change operations produced by a source."""

    @abstractmethod
    def emit(self, change: ChangeOp) -> None:
        pass

    def close(self) -> None:
        pass


class LoggingChangeSink(ChangeSink):
    """Writes every change to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def emit(self, change: ChangeOp) -> None:
        logger.log(self.level, f"{change.kind.value} {change.id}: {change.to_dict()['properties']}")


class JsonLinesChangeSink(ChangeSink):
    """Writes every change as one JSON object per line."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self._lock = threading.Lock()

    def emit(self, change: ChangeOp) -> None:
        line = json.dumps(change.to_dict(), separators=(",", ":"), ensure_ascii=False)
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()


class MqttSourceService(MqttServiceBase):
    """
    Source instance: one subscription, one mapper, one identity registry.

    Args:
        settings: Source configuration
        mqtt_settings: Broker configuration
        sink: Destination for produced changes
        client: Optional pre-built MQTT client
        registry: Optional identity registry (a fresh one per instance by default)
    """

    def __init__(
        self,
        settings: SourceSettings,
        mqtt_settings: Optional[MQTTSettings] = None,
        sink: Optional[ChangeSink] = None,
        client: Optional[MqttClient] = None,
        registry: Optional[IdentityRegistry] = None,
    ):
        super().__init__(
            f"source_{settings.id}",
            mqtt_settings,
            client_id=settings.client_id,
            client=client,
        )
        self.settings = settings
        self.mapper = IngestionMapper(settings, registry)
        self.sink = sink or LoggingChangeSink()

        self.stats = {
            "messages_received": 0,
            "creates": 0,
            "updates": 0,
            "parse_errors": 0,
            "missing_id": 0,
            "unsupported_shape": 0,
            "sink_errors": 0,
        }

    @property
    def registry(self) -> IdentityRegistry:
        return self.mapper.registry

    async def setup_mqtt_subscriptions(self):
        self.register_topic_handler(self.settings.topic, self.handle_message)

    async def handle_message(self, topic: str, payload: bytes):
        """
        Maps one inbound message and forwards the result.

        Args:
            topic: Topic the message arrived on
            payload: Raw payload bytes
        """
        self.stats["messages_received"] += 1

        change, error = self.mapper.try_map(topic, payload)
        if error is not None:
            self._record_error(error)
            return

        if change.kind is ChangeKind.CREATE:
            self.stats["creates"] += 1
        else:
            self.stats["updates"] += 1

        try:
            self.sink.emit(change)
        except Exception as e:
            self.stats["sink_errors"] += 1
            self.logger.error(f"Error forwarding change for {change.id}: {e}")

    def _record_error(self, error: MapError):
        if isinstance(error, ParseError):
            self.stats["parse_errors"] += 1
        elif isinstance(error, MissingIdField):
            self.stats["missing_id"] += 1
        elif isinstance(error, UnsupportedPropertyShape):
            self.stats["unsupported_shape"] += 1
        self.logger.warning(f"Dropping message on {error.topic}: {error}")

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(self.stats)
        status["known_ids"] = len(self.registry)
        status["mode"] = self.settings.mode.value
        return status

    async def stop_mqtt(self):
        await super().stop_mqtt()
        self.sink.close()
