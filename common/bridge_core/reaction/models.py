"""
Data models for the reaction side: query results and publish tasks.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..errors import RenderError

QueryResultItem = Dict[str, Any]


class ResultChangeKind(Enum):
    """Partition of a query result an item belongs to."""
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


# Diff record types emitted by the query engine
_DIFF_TYPES = {
    "add": ResultChangeKind.ADDED,
    "update": ResultChangeKind.UPDATED,
    "delete": ResultChangeKind.REMOVED,
}


@dataclass
class QueryResult:
    """
    One delta notification of a continuous query.

    Attributes:
        added: Items that entered the result set, in engine order
        updated: Items whose values changed (state after the change)
        removed: Items that left the result set
        query_id: Name of the query that produced the result
        sequence: Per-reaction sequence number, assigned on intake
    """
    added: List[QueryResultItem] = field(default_factory=list)
    updated: List[QueryResultItem] = field(default_factory=list)
    removed: List[QueryResultItem] = field(default_factory=list)
    query_id: Optional[str] = None
    sequence: Optional[int] = None

    def items(self, kind: ResultChangeKind) -> List[QueryResultItem]:
        return getattr(self, kind.value)

    def __len__(self) -> int:
        return len(self.added) + len(self.updated) + len(self.removed)

    @classmethod
    def from_diffs(
        cls,
        query_id: Optional[str],
        diffs: Iterable[Mapping[str, Any]],
        sequence: Optional[int] = None,
    ) -> "QueryResult":
        """
        Partitions engine diff records into added/updated/removed.

        Records look like {"type": "add", "data": {...}},
        {"type": "update", "before": {...}, "after": {...}} or
        {"type": "delete", "data": {...}}. Unknown types are ignored.
        """
        result = cls(query_id=query_id, sequence=sequence)
        for diff in diffs:
            if not isinstance(diff, Mapping):
                continue
            kind = _DIFF_TYPES.get(str(diff.get("type", "")).lower())
            if kind is None:
                continue
            if kind is ResultChangeKind.UPDATED:
                item = diff.get("after")
            else:
                item = diff.get("data")
            if isinstance(item, Mapping):
                result.items(kind).append(dict(item))
        return result

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> "QueryResult":
        """
        Builds a result from a JSON document.

        Accepts either explicit "added"/"updated"/"removed" arrays or a
        "results" array of diff records, plus optional "query_id" and
        "sequence".

        Raises:
            ValueError: Document has neither shape
        """
        query_id = document.get("query_id")
        sequence = document.get("sequence")
        if "results" in document:
            return cls.from_diffs(query_id, document["results"], sequence)

        if not any(kind.value in document for kind in ResultChangeKind):
            raise ValueError("query result needs 'added', 'updated', 'removed' or 'results'")

        def _items(key: str) -> List[QueryResultItem]:
            value = document.get(key) or []
            if not isinstance(value, list) or not all(isinstance(i, Mapping) for i in value):
                raise ValueError(f"'{key}' must be an array of objects")
            return [dict(i) for i in value]

        return cls(
            added=_items("added"),
            updated=_items("updated"),
            removed=_items("removed"),
            query_id=query_id,
            sequence=sequence,
        )


@dataclass(frozen=True)
class PublishTask:
    """A single MQTT publication handed to the transport."""
    topic: str
    payload: bytes


@dataclass(frozen=True)
class PublishDiagnostic:
    """
    An item that was skipped because a template could not be rendered.
    """
    error: RenderError
    change_kind: ResultChangeKind
    index: int

    def __str__(self) -> str:
        return f"{self.change_kind.value}[{self.index}]: {self.error}"


@dataclass
class PublishOutcome:
    """Tasks produced by one publish call plus the skipped-item diagnostics."""
    tasks: List[PublishTask] = field(default_factory=list)
    diagnostics: List[PublishDiagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def __iter__(self):
        return iter(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)
