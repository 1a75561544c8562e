"""Error taxonomy for kinship graph operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from familylink.core.validation import RejectionReason


class FamilyLinkError(Exception):
    """Base class for all familylink errors."""


class ValidationError(FamilyLinkError):
    """Malformed or missing input fields."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class StructuralViolation(FamilyLinkError):
    """A proposed edge would break a graph invariant."""

    def __init__(self, reason: "RejectionReason", message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class NotFound(FamilyLinkError):
    """Referenced person, edge or family does not exist."""
