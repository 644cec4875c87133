"""
Cascade result types.

Cascades keep going after a sibling fails, so the outcome is a collection of
failures rather than a single flag. ``CascadeResult`` is truthy exactly when
nothing failed, which keeps ``if record.cascade_save():`` working.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

VALIDATE = "validate"
SAVE = "save"
DELETE = "delete"


@dataclass
class CascadeFailure:
    """One record that could not be validated, saved or deleted."""
    record: Any
    operation: str
    relation: Optional[str] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    exception: Optional[BaseException] = None

    @property
    def message(self) -> str:
        if self.exception is not None:
            return str(self.exception)
        messages = [m for field_messages in self.errors.values() for m in field_messages]
        return "; ".join(messages)


@dataclass
class CascadeResult:
    """Aggregated outcome of a validate/save/delete cascade."""
    failures: List[CascadeFailure] = field(default_factory=list)

    def __bool__(self) -> bool:
        return not self.failures

    @property
    def success(self) -> bool:
        return not self.failures

    def add_failure(
        self,
        record: Any,
        operation: str,
        relation: Optional[str] = None,
        errors: Optional[Dict[str, List[str]]] = None,
        exception: Optional[BaseException] = None,
    ) -> CascadeFailure:
        failure = CascadeFailure(
            record=record,
            operation=operation,
            relation=relation,
            errors=dict(errors or {}),
            exception=exception,
        )
        self.failures.append(failure)
        return failure

    def merge(self, other: "CascadeResult") -> "CascadeResult":
        self.failures.extend(other.failures)
        return self

    @property
    def failed_records(self) -> List[Any]:
        seen = set()
        records = []
        for failure in self.failures:
            if id(failure.record) in seen:
                continue
            seen.add(id(failure.record))
            records.append(failure.record)
        return records

    def errors_by_relation(self) -> Dict[Optional[str], List[CascadeFailure]]:
        grouped: Dict[Optional[str], List[CascadeFailure]] = {}
        for failure in self.failures:
            grouped.setdefault(failure.relation, []).append(failure)
        return grouped

    def __repr__(self) -> str:
        status = "ok" if self.success else f"{len(self.failures)} failure(s)"
        return f"<CascadeResult {status}>"
