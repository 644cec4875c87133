"""
Relation state tracking.

The tracker holds two maps per record: the collection currently populated for
each relation, and the snapshot of the collection as it was just before the
most recent assignment. Only relations with a snapshot take part in cascades.
"""

from typing import Any, Dict, Iterable, List


class RelationStateTracker:
    """In-memory populated/old state of a record's relations."""

    def __init__(self):
        self._populated: Dict[str, List[Any]] = {}
        self._old: Dict[str, List[Any]] = {}

    def is_populated(self, name: str) -> bool:
        return name in self._populated

    def populate(self, name: str, records: Iterable[Any]) -> List[Any]:
        records = list(records or ())
        self._populated[name] = records
        return records

    def current(self, name: str) -> List[Any]:
        return self._populated.get(name, [])

    def snapshot(self, name: str, records: Iterable[Any]) -> None:
        """Store ``records`` as the old value of ``name``, replacing any prior one."""
        self._old[name] = list(records or ())

    def old(self, name: str) -> List[Any]:
        return self._old.get(name, [])

    def tracked_names(self) -> List[str]:
        return list(self._old)
