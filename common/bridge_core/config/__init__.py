"""
Configuration package for the MQTT graph bridge.
"""

from .manager import ConfigManager
from .config_model import (
    BATCH_CONTEXT_FIELDS,
    BridgeSettings,
    LoggingSettings,
    MQTTSettings,
    OperationMode,
    ReactionSettings,
    SourceSettings,
    build_settings,
    compile_reaction_templates,
    load_settings,
)

__all__ = [
    "ConfigManager",
    "BATCH_CONTEXT_FIELDS",
    "BridgeSettings",
    "LoggingSettings",
    "MQTTSettings",
    "OperationMode",
    "ReactionSettings",
    "SourceSettings",
    "build_settings",
    "compile_reaction_templates",
    "load_settings",
]
