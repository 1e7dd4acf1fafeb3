"""
MQTT transport for the graph bridge.
"""

from .client import MqttClient
from .service import MqttServiceBase, MqttTopics

__all__ = ["MqttClient", "MqttServiceBase", "MqttTopics"]
