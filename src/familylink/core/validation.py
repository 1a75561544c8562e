"""
Mutation-time checks for relationship edges.

Every check reads the graph as given and returns a ValidationResult. Expected
domain violations are reported, not raised; callers decide whether to convert
a rejection into an exception with ValidationResult.raise_for_rejection().

The validator is stateless. Atomicity of validate-then-write is the caller's
job (see familylink.api.service).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from familylink.core.exceptions import NotFound, StructuralViolation
from familylink.core.graph import FamilyGraph
from familylink.core.models import Person


class RejectionReason(str, Enum):
    """Why a proposed mutation was refused."""
    SELF_REFERENCE = "self_reference"
    NOT_FOUND = "not_found"
    CROSS_FAMILY = "cross_family"
    DUPLICATE = "duplicate"
    CYCLE = "cycle"
    CHRONOLOGY = "chronology"
    INACTIVE = "inactive"
    INVALID_DATES = "invalid_dates"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a relationship check."""
    is_valid: bool
    reason: RejectionReason | None = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.is_valid

    @classmethod
    def accept(cls) -> ValidationResult:
        return cls(is_valid=True)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str) -> ValidationResult:
        return cls(is_valid=False, reason=reason, message=message)

    def raise_for_rejection(self) -> None:
        """Raise NotFound or StructuralViolation if this result is a rejection."""
        if self.is_valid:
            return
        if self.reason == RejectionReason.NOT_FOUND:
            raise NotFound(self.message)
        raise StructuralViolation(self.reason, self.message)


class RelationshipValidator:
    """
    Structural rules for parent-child and spouse edges.

    Checks run in a fixed order so the reported reason is stable:
    self-reference, missing endpoints, cross-family, duplicate, cycle,
    chronology.
    """

    def validate_endpoints(
        self,
        a: Person | None,
        b: Person | None,
        a_id: str | None = None,
        b_id: str | None = None,
    ) -> ValidationResult:
        """
        Person-level checks shared by every proposal.

        a_id / b_id identify the requested endpoints when the person records
        may be missing.
        """
        a_id = a_id or (a.id if a else None)
        b_id = b_id or (b.id if b else None)

        if a_id is not None and a_id == b_id:
            return ValidationResult.reject(
                RejectionReason.SELF_REFERENCE,
                "A person cannot be related to themselves",
            )
        if a is None or b is None:
            missing = a_id if a is None else b_id
            return ValidationResult.reject(
                RejectionReason.NOT_FOUND,
                f"Person not found: {missing}",
            )
        if a.family_id != b.family_id:
            return ValidationResult.reject(
                RejectionReason.CROSS_FAMILY,
                "Persons must be in the same family",
            )
        return ValidationResult.accept()

    def validate_parent_child(
        self,
        parent_id: str,
        child_id: str,
        graph: FamilyGraph,
    ) -> ValidationResult:
        """Check a proposed parent -> child edge."""
        parent = graph.person(parent_id)
        child = graph.person(child_id)

        result = self.validate_endpoints(parent, child, parent_id, child_id)
        if not result:
            return result

        if graph.has_parent_child(parent_id, child_id):
            return ValidationResult.reject(
                RejectionReason.DUPLICATE,
                "Parent-child relationship already exists",
            )

        # Walk the whole ancestor chain of the parent, not just its direct parents.
        if graph.is_ancestor(child_id, parent_id):
            return ValidationResult.reject(
                RejectionReason.CYCLE,
                "Cannot create relationship: would create a cycle",
            )

        if parent.birth_date and child.birth_date and parent.birth_date >= child.birth_date:
            return ValidationResult.reject(
                RejectionReason.CHRONOLOGY,
                "Parent must be older than child",
            )

        return ValidationResult.accept()

    def validate_spouse_link(
        self,
        a_id: str,
        b_id: str,
        graph: FamilyGraph,
    ) -> ValidationResult:
        """Check a proposed spouse link; orientation does not matter."""
        result = self.validate_endpoints(graph.person(a_id), graph.person(b_id), a_id, b_id)
        if not result:
            return result

        if graph.active_spouse_link(a_id, b_id) is not None:
            return ValidationResult.reject(
                RejectionReason.DUPLICATE,
                "Spouse relationship already exists",
            )

        return ValidationResult.accept()

    def validate_birth_date(
        self,
        person_id: str,
        birth_date: date | None,
        graph: FamilyGraph,
    ) -> ValidationResult:
        """Check a changed birth date against the person's existing parents and children."""
        if birth_date is None:
            return ValidationResult.accept()

        for parent_id in graph.parents_of(person_id):
            parent = graph.persons[parent_id]
            if parent.birth_date and parent.birth_date >= birth_date:
                return ValidationResult.reject(
                    RejectionReason.CHRONOLOGY,
                    f"Parent {parent.full_name()} must be older than child",
                )
        for child_id in graph.children_of(person_id):
            child = graph.persons[child_id]
            if child.birth_date and birth_date >= child.birth_date:
                return ValidationResult.reject(
                    RejectionReason.CHRONOLOGY,
                    f"Parent must be older than child {child.full_name()}",
                )
        return ValidationResult.accept()

    def validate_parent_child_removal(
        self,
        parent_id: str,
        child_id: str,
        graph: FamilyGraph,
    ) -> ValidationResult:
        if not graph.has_parent_child(parent_id, child_id):
            return ValidationResult.reject(
                RejectionReason.NOT_FOUND,
                "Relationship not found",
            )
        return ValidationResult.accept()

    def validate_spouse_removal(
        self,
        a_id: str,
        b_id: str,
        graph: FamilyGraph,
    ) -> ValidationResult:
        if graph.spouse_link(a_id, b_id) is None:
            return ValidationResult.reject(
                RejectionReason.NOT_FOUND,
                "Spouse relationship not found",
            )
        return ValidationResult.accept()

    def validate_spouse_end(
        self,
        a_id: str,
        b_id: str,
        end_date: date,
        graph: FamilyGraph,
    ) -> ValidationResult:
        """Check that an active link exists and can end on end_date."""
        link = graph.spouse_link(a_id, b_id)
        if link is None:
            return ValidationResult.reject(
                RejectionReason.NOT_FOUND,
                "Spouse relationship not found",
            )
        if not link.is_active:
            return ValidationResult.reject(
                RejectionReason.INACTIVE,
                f"Spouse relationship already ended on {link.end_date}",
            )
        if link.start_date and end_date < link.start_date:
            return ValidationResult.reject(
                RejectionReason.INVALID_DATES,
                f"End date {end_date} is before start date {link.start_date}",
            )
        return ValidationResult.accept()
