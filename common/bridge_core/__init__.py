"""
MQTT graph bridge core package.

Ingestion (MQTT messages -> graph change operations) and reactions
(query results -> MQTT messages), plus the shared configuration, template
and MQTT transport layers.
"""

__version__ = "1.0.0"

from .errors import (
    BridgeError,
    ConfigurationError,
    MapError,
    MissingIdField,
    ParseError,
    RenderError,
    UnresolvedVariable,
    UnsupportedPropertyShape,
)
from .template import Template, TemplateRenderer
from .config import BridgeSettings, ConfigManager, OperationMode, load_settings
from .ingest import ChangeKind, CreateOp, IdentityRegistry, IngestionMapper, UpdateOp
from .reaction import PublishDiagnostic, PublishOutcome, PublishTask, QueryResult, ResultPublisher

__all__ = [
    "BridgeError",
    "ConfigurationError",
    "MapError",
    "MissingIdField",
    "ParseError",
    "RenderError",
    "UnresolvedVariable",
    "UnsupportedPropertyShape",
    "Template",
    "TemplateRenderer",
    "BridgeSettings",
    "ConfigManager",
    "OperationMode",
    "load_settings",
    "ChangeKind",
    "CreateOp",
    "IdentityRegistry",
    "IngestionMapper",
    "UpdateOp",
    "PublishDiagnostic",
    "PublishOutcome",
    "PublishTask",
    "QueryResult",
    "ResultPublisher",
]
