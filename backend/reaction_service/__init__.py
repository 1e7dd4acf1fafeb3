# backend/reaction_service/__init__.py
"""
MQTT reaction service package

Components:
- service: MqttReactionService
- main: command line entry point (query results from stdin)

Usage:
    bridge-reaction --config bridge.yaml < results.jsonl
    python -m backend.reaction_service.main
"""

from .service import MqttReactionService

__all__ = ["MqttReactionService"]
