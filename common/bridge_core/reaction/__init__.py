"""
Reaction side: query results -> MQTT publish tasks.
"""

from .models import (
    PublishDiagnostic,
    PublishOutcome,
    PublishTask,
    QueryResult,
    ResultChangeKind,
)
from .publisher import CHANGE_KIND_FIELD, ResultPublisher, encode_batch

__all__ = [
    "PublishDiagnostic",
    "PublishOutcome",
    "PublishTask",
    "QueryResult",
    "ResultChangeKind",
    "ResultPublisher",
    "CHANGE_KIND_FIELD",
    "encode_batch",
]
