# backend/source_service/__init__.py
"""
MQTT source service package

Components:
- service: MqttSourceService and change sinks
- main: command line entry point

Usage:
    bridge-source --config bridge.yaml
    python -m backend.source_service.main
"""

from .service import ChangeSink, JsonLinesChangeSink, LoggingChangeSink, MqttSourceService

__all__ = [
    "ChangeSink",
    "JsonLinesChangeSink",
    "LoggingChangeSink",
    "MqttSourceService",
]
