"""
Ingestion side: MQTT messages -> graph change operations.
"""

from .models import ChangeKind, ChangeOp, CreateOp, OperationMode, UpdateOp
from .registry import IdentityRegistry
from .mapper import IngestionMapper, decide_operation, map_message, normalize_entity_id

__all__ = [
    "ChangeKind",
    "ChangeOp",
    "CreateOp",
    "UpdateOp",
    "OperationMode",
    "IdentityRegistry",
    "IngestionMapper",
    "decide_operation",
    "map_message",
    "normalize_entity_id",
]
