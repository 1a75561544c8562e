"""
Family tree service: the mutation contract and read operations.

Every structural mutation runs as a single unit per family:

    lock(family) -> BEGIN IMMEDIATE -> load graph -> validate -> write -> COMMIT

so two concurrent proposals can never both pass validation against the same
pre-mutation snapshot.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generator, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from familylink.core.exceptions import NotFound, ValidationError
from familylink.core.graph import FamilyGraph
from familylink.core.layout import LayoutEngine, TreeLayout
from familylink.core.models import (
    Family,
    Memory,
    ParentChildEdge,
    Person,
    PrivacyTier,
    SpouseEdge,
)
from familylink.core.privacy import PrivacyFilter
from familylink.core.validation import RejectionReason, RelationshipValidator, ValidationResult
from familylink.store.client import FamilyStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class MutationResult:
    """Outcome of a proposed mutation."""
    accepted: bool
    reason: RejectionReason | None = None
    message: str = ""
    edge: ParentChildEdge | SpouseEdge | None = None

    def __bool__(self) -> bool:
        return self.accepted

    @classmethod
    def rejected(cls, result: ValidationResult) -> MutationResult:
        return cls(accepted=False, reason=result.reason, message=result.message)

    def raise_for_rejection(self) -> None:
        if not self.accepted:
            ValidationResult(False, self.reason, self.message).raise_for_rejection()


def build_model(model: type[M], **data: Any) -> M:
    """Instantiate a model, reporting bad input as ValidationError."""
    try:
        return model(**data)
    except PydanticValidationError as exc:
        raise ValidationError(
            str(exc),
            errors=exc.errors(include_url=False, include_context=False),
        ) from exc


class FamilyTreeService:
    """
    Entry point for reading and changing a family tree.

    Args:
        store: Connected FamilyStore
        validator: Structural rules (default RelationshipValidator)
        layout: Layout engine (default LayoutEngine)
        privacy: Privacy filter (default PrivacyFilter)
    """

    def __init__(
        self,
        store: FamilyStore,
        validator: RelationshipValidator | None = None,
        layout: LayoutEngine | None = None,
        privacy: PrivacyFilter | None = None,
    ):
        self.store = store
        self.validator = validator or RelationshipValidator()
        self.layout = layout or LayoutEngine()
        self.privacy = privacy or PrivacyFilter()
        self._family_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _family_lock(self, family_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._family_locks.setdefault(family_id, threading.Lock())

    @contextmanager
    def _mutation(self, family_id: str) -> Generator[FamilyGraph, None, None]:
        """Hold the family lock and a write transaction around a fresh snapshot."""
        with self._family_lock(family_id), self.store.transaction():
            yield self.store.load_graph(family_id)

    def _reject(self, action: str, result: ValidationResult) -> MutationResult:
        logger.info("Rejected %s: %s (%s)", action, result.reason.value, result.message)
        return MutationResult.rejected(result)

    def _require_person(self, person_id: str) -> Person:
        person = self.store.get_person(person_id)
        if person is None:
            raise NotFound(f"Person not found: {person_id}")
        return person

    def _require_family(self, family_id: str) -> Family:
        family = self.store.get_family(family_id)
        if family is None:
            raise NotFound(f"Family not found: {family_id}")
        return family

    # =========================================
    # Relationship Mutations
    # =========================================

    def propose_parent_child(self, parent_id: str, child_id: str) -> MutationResult:
        """Create a parent -> child edge if it keeps the family graph valid."""
        parent = self.store.get_person(parent_id)
        child = self.store.get_person(child_id)
        precheck = self.validator.validate_endpoints(parent, child, parent_id, child_id)
        if not precheck:
            return self._reject("parent-child", precheck)

        with self._mutation(parent.family_id) as graph:
            result = self.validator.validate_parent_child(parent_id, child_id, graph)
            if not result:
                return self._reject("parent-child", result)
            edge = self.store.add_parent_child(
                ParentChildEdge(parent_id=parent_id, child_id=child_id)
            )

        logger.info("Added parent-child %s -> %s", parent_id, child_id)
        return MutationResult(accepted=True, edge=edge)

    def propose_spouse_link(
        self,
        a_id: str,
        b_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> MutationResult:
        """Create a spouse link unless an active one already exists for the pair."""
        a = self.store.get_person(a_id)
        b = self.store.get_person(b_id)
        precheck = self.validator.validate_endpoints(a, b, a_id, b_id)
        if not precheck:
            return self._reject("spouse link", precheck)

        try:
            edge = SpouseEdge(a_id=a_id, b_id=b_id, start_date=start_date, end_date=end_date)
        except PydanticValidationError:
            return self._reject("spouse link", ValidationResult.reject(
                RejectionReason.INVALID_DATES,
                f"End date {end_date} is before start date {start_date}",
            ))

        with self._mutation(a.family_id) as graph:
            result = self.validator.validate_spouse_link(a_id, b_id, graph)
            if not result:
                return self._reject("spouse link", result)
            self.store.add_spouse(edge)

        logger.info("Added spouse link %s <-> %s", a_id, b_id)
        return MutationResult(accepted=True, edge=edge)

    def propose_edge_removal(self, edge_id: str) -> MutationResult:
        """Remove a parent-child edge or a spouse link by id."""
        pc_edge = self.store.get_parent_child(edge_id)
        if pc_edge is not None:
            child = self._require_person(pc_edge.child_id)
            with self._mutation(child.family_id) as graph:
                result = self.validator.validate_parent_child_removal(
                    pc_edge.parent_id, pc_edge.child_id, graph
                )
                if not result:
                    return self._reject("edge removal", result)
                self.store.delete_parent_child(edge_id)
            logger.info("Removed parent-child %s -> %s", pc_edge.parent_id, pc_edge.child_id)
            return MutationResult(accepted=True, edge=pc_edge)

        spouse_edge = self.store.get_spouse(edge_id)
        if spouse_edge is not None:
            a = self._require_person(spouse_edge.a_id)
            with self._mutation(a.family_id) as graph:
                result = self.validator.validate_spouse_removal(
                    spouse_edge.a_id, spouse_edge.b_id, graph
                )
                if not result:
                    return self._reject("edge removal", result)
                self.store.delete_spouse(edge_id)
            logger.info("Removed spouse link %s <-> %s", spouse_edge.a_id, spouse_edge.b_id)
            return MutationResult(accepted=True, edge=spouse_edge)

        return self._reject("edge removal", ValidationResult.reject(
            RejectionReason.NOT_FOUND,
            f"Relationship not found: {edge_id}",
        ))

    def end_spouse_link(self, edge_id: str, end_date: date | None = None) -> MutationResult:
        """Mark a spouse link as ended. The record stays for history."""
        end_date = end_date or date.today()
        stored = self.store.get_spouse(edge_id)
        if stored is None:
            return self._reject("spouse end", ValidationResult.reject(
                RejectionReason.NOT_FOUND,
                "Spouse relationship not found",
            ))
        if not stored.is_active:
            return self._reject("spouse end", ValidationResult.reject(
                RejectionReason.INACTIVE,
                f"Spouse relationship already ended on {stored.end_date}",
            ))

        a = self._require_person(stored.a_id)
        with self._mutation(a.family_id) as graph:
            result = self.validator.validate_spouse_end(stored.a_id, stored.b_id, end_date, graph)
            if not result:
                return self._reject("spouse end", result)
            edge = self.store.end_spouse(edge_id, end_date)

        logger.info("Ended spouse link %s on %s", edge_id, end_date)
        return MutationResult(accepted=True, edge=edge)

    # =========================================
    # Families and Persons
    # =========================================

    def create_family(self, name: str, slug: str, description: str | None = None) -> Family:
        family = build_model(Family, name=name, slug=slug, description=description)
        try:
            self.store.add_family(family)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Slug already in use: {slug}") from exc
        logger.info("Created family %s (%s)", family.name, family.slug)
        return family

    def get_family(self, family_id: str) -> Family:
        return self._require_family(family_id)

    def update_family(self, family_id: str, **changes: Any) -> Family:
        """Rename a family or change its slug or description."""
        existing = self._require_family(family_id)
        data = existing.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        data.update(id=existing.id, created_at=existing.created_at)
        family = build_model(Family, **data)

        taken = self.store.get_family_by_slug(family.slug)
        if taken is not None and taken.id != family_id:
            raise ValidationError(f"Slug already in use: {family.slug}")
        try:
            self.store.update_family(family)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Slug already in use: {family.slug}") from exc
        logger.info("Updated family %s (%s)", family.id, family.slug)
        return family

    def create_person(self, family_id: str, **fields: Any) -> Person:
        self._require_family(family_id)
        person = build_model(Person, family_id=family_id, **fields)
        self.store.add_person(person)
        logger.info("Created person %s in family %s", person.id, family_id)
        return person

    def update_person(self, person_id: str, **changes: Any) -> Person:
        """
        Apply field changes to a person.

        A changed birth date is checked against existing parents and children.
        """
        existing = self._require_person(person_id)
        data = existing.model_dump()
        data.update(changes)
        data.update(id=existing.id, family_id=existing.family_id, updated_at=datetime.now())
        person = build_model(Person, **data)

        with self._mutation(existing.family_id) as graph:
            if person.birth_date != existing.birth_date:
                self.validator.validate_birth_date(
                    person_id, person.birth_date, graph
                ).raise_for_rejection()
            self.store.update_person(person)
        return person

    def delete_person(self, person_id: str) -> None:
        person = self._require_person(person_id)
        with self._mutation(person.family_id):
            self.store.delete_person(person_id)
        logger.info("Deleted person %s", person_id)

    def get_person(
        self,
        person_id: str,
        viewer_tier: PrivacyTier | str = PrivacyTier.PUBLIC,
        is_family_member: bool = False,
    ) -> dict[str, Any]:
        """Person projected for the viewer."""
        person = self._require_person(person_id)
        return self.privacy.project(person, viewer_tier, is_family_member)

    def get_siblings(self, person_id: str) -> list[Person]:
        """Persons sharing at least one parent with person_id."""
        person = self._require_person(person_id)
        graph = self.store.load_graph(person.family_id)
        return [graph.persons[sid] for sid in graph.siblings(person_id)]

    def search_persons(self, family_id: str, query: str, limit: int = 10) -> list[Person]:
        if not query or not query.strip():
            raise ValidationError("Search query is required")
        return self.store.search_persons(family_id, query.strip(), limit)

    # =========================================
    # Memories
    # =========================================

    def _require_memory(self, memory_id: str) -> Memory:
        memory = self.store.get_memory(memory_id)
        if memory is None:
            raise NotFound(f"Memory not found: {memory_id}")
        return memory

    def _check_tags(self, memory: Memory, graph: FamilyGraph) -> None:
        unknown = [pid for pid in memory.tagged_person_ids if pid not in graph]
        if unknown:
            raise ValidationError(
                f"Tagged persons not in family {memory.family_id}: {', '.join(unknown)}",
                errors=[{"loc": ["taggedPersonIds"], "msg": f"unknown person {pid}"} for pid in unknown],
            )

    def create_memory(self, family_id: str, **fields: Any) -> Memory:
        """Post a memory to the family feed. Tagged persons must belong to the family."""
        self._require_family(family_id)
        memory = build_model(Memory, family_id=family_id, **fields)
        with self._mutation(family_id) as graph:
            self._check_tags(memory, graph)
            self.store.add_memory(memory)
        logger.info("Created memory %s in family %s", memory.id, family_id)
        return memory

    def update_memory(self, memory_id: str, **changes: Any) -> Memory:
        """Apply partial changes; fields passed as None are left as they are."""
        existing = self._require_memory(memory_id)
        data = existing.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        data.update(id=existing.id, family_id=existing.family_id, updated_at=datetime.now())
        memory = build_model(Memory, **data)
        with self._mutation(existing.family_id) as graph:
            self._check_tags(memory, graph)
            self.store.update_memory(memory)
        logger.info("Updated memory %s", memory_id)
        return memory

    def delete_memory(self, memory_id: str) -> None:
        memory = self._require_memory(memory_id)
        with self._mutation(memory.family_id):
            self.store.delete_memory(memory_id)
        logger.info("Deleted memory %s", memory_id)

    def get_memory(self, memory_id: str) -> Memory:
        return self._require_memory(memory_id)

    def get_memories(self, family_id: str, person_id: str | None = None) -> list[Memory]:
        """Family feed, newest first. With person_id, only memories tagging that person."""
        self._require_family(family_id)
        return self.store.list_memories(family_id, person_id)

    # =========================================
    # Layout
    # =========================================

    def get_layout(
        self,
        family_id: str,
        viewer_tier: PrivacyTier | str = PrivacyTier.PUBLIC,
        is_family_member: bool = False,
    ) -> TreeLayout:
        """Tree layout for a family, with payloads redacted for the viewer."""
        self._require_family(family_id)
        graph = self.store.load_graph(family_id)

        def project(person: Person) -> dict[str, Any]:
            return self.privacy.project(person, viewer_tier, is_family_member)

        return self.layout.compute(graph, project)

    def get_public_layout(self, slug: str) -> tuple[Family, TreeLayout]:
        """Public share view of a family, looked up by slug."""
        family = self.store.get_family_by_slug(slug)
        if family is None:
            raise NotFound(f"Family not found: {slug}")
        return family, self.get_layout(family.id, PrivacyTier.PUBLIC)

