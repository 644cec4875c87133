"""
Custom exceptions for relation registration and lookup.

Expected failures (validation errors, rejected row writes) never raise; they
are reported through ``CascadeResult``. The exceptions below signal
programming errors in how relations are declared or used.
"""

from typing import Any, Optional


class RelationError(Exception):
    """Base exception for relation errors."""

    def __init__(self, message: str, model_name: Optional[str] = None):
        self.model_name = model_name
        super().__init__(message)


class RelationNotFoundError(RelationError):
    """Raised when a relation name is not registered on the record."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        relation_name: Optional[str] = None,
    ):
        self.relation_name = relation_name
        super().__init__(message, model_name)


class RelationConflictError(RelationError):
    """Raised when a relation name is re-registered with another definition."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        relation_name: Optional[str] = None,
        existing: Optional[Any] = None,
        proposed: Optional[Any] = None,
    ):
        self.relation_name = relation_name
        self.existing = existing
        self.proposed = proposed
        super().__init__(message, model_name)


class InvalidLinkError(RelationError):
    """Raised when a relation link does not map exactly one child attribute."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        link: Optional[Any] = None,
    ):
        self.link = link
        super().__init__(message, model_name)
