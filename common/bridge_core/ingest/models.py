"""
Data models for the ingestion side: operation modes and change operations.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Union

from ..config.config_model import OperationMode

# JSON scalar as stored in a property map; None is the explicit null marker
PropertyValue = Union[str, int, float, bool, None]


class ChangeKind(Enum):
    """Kind of change operation handed to the graph store."""
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class CreateOp:
    """
    A new entity was observed.
    """
    id: str
    label: str
    properties: Dict[str, PropertyValue] = field(default_factory=dict)

    @property
    def kind(self) -> ChangeKind:
        return ChangeKind.CREATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op": self.kind.value,
            "id": self.id,
            "label": self.label,
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class UpdateOp:
    """
    An already known entity changed.
    """
    id: str
    properties: Dict[str, PropertyValue] = field(default_factory=dict)

    @property
    def kind(self) -> ChangeKind:
        return ChangeKind.UPDATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op": self.kind.value,
            "id": self.id,
            "properties": dict(self.properties),
        }


ChangeOp = Union[CreateOp, UpdateOp]
