"""
Identity registry for one source instance.

Keeps the set of entity ids a source has already emitted, so the mapper
can tell a new entity from an update of a known one. The registry lives
exactly as long as its source instance and never evicts.
"""

import threading
from typing import FrozenSet, Iterator


class IdentityRegistry:
    """
    Thread-safe set of observed entity ids.

    All access goes through one lock, so check_and_record() is a single
    atomic unit even when the transport delivers messages in parallel.
    """

    def __init__(self):
        self._ids = set()
        self._lock = threading.Lock()

    def contains(self, entity_id: str) -> bool:
        """
        Checks whether an id was recorded before.

        Args:
            entity_id: Normalized entity id

        Returns:
            bool: True if the id is known
        """
        with self._lock:
            return entity_id in self._ids

    def record(self, entity_id: str) -> None:
        """
        Records an id. Recording a known id is a no-op.

        Args:
            entity_id: Normalized entity id
        """
        with self._lock:
            self._ids.add(entity_id)

    def check_and_record(self, entity_id: str) -> bool:
        """
        Records an id and reports whether it was new.

        Args:
            entity_id: Normalized entity id

        Returns:
            bool: True if the id was absent before this call
        """
        with self._lock:
            if entity_id in self._ids:
                return False
            self._ids.add(entity_id)
            return True

    def snapshot(self) -> FrozenSet[str]:
        """Returns an immutable copy of the recorded ids."""
        with self._lock:
            return frozenset(self._ids)

    def __contains__(self, entity_id: object) -> bool:
        return isinstance(entity_id, str) and self.contains(entity_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
