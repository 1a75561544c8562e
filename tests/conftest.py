"""Pytest configuration and fixtures for FamilyLink tests."""

from __future__ import annotations

from datetime import date
from typing import Callable, Iterable

import pytest

from familylink.api.service import FamilyTreeService
from familylink.core.graph import FamilyGraph, attach_links, build_graph
from familylink.core.models import (
    Family,
    ParentChildEdge,
    Person,
    PrivacyTier,
    SensitiveField,
    SpouseEdge,
)
from familylink.seed import seed_demo_family
from familylink.store.client import FamilyStore


# =============================================================================
# Model Fixtures
# =============================================================================

@pytest.fixture
def make_person() -> Callable[..., Person]:
    """Factory for persons with a fixed id in family F1."""

    def _make(person_id: str, given: str, surname: str | None = "Smith", **fields) -> Person:
        fields.setdefault("family_id", "F1")
        return Person(id=person_id, given_name=given, family_name=surname, **fields)

    return _make


@pytest.fixture
def make_graph() -> Callable[..., FamilyGraph]:
    """
    Factory for graphs built from persons plus (parent, child) and (a, b) id pairs.

    Edge ids are derived from the endpoints so tests can refer to them.
    """

    def _make(
        persons: Iterable[Person],
        parent_child: Iterable[tuple[str, str]] = (),
        spouses: Iterable[tuple[str, str]] = (),
    ) -> FamilyGraph:
        pc_edges = [
            ParentChildEdge(id=f"pc-{p}-{c}", parent_id=p, child_id=c)
            for p, c in parent_child
        ]
        spouse_edges = [
            SpouseEdge(id=f"sp-{a}-{b}", a_id=a, b_id=b)
            for a, b in spouses
        ]
        return build_graph(attach_links(persons, pc_edges, spouse_edges))

    return _make


@pytest.fixture
def two_generation_graph(make_person, make_graph) -> FamilyGraph:
    """P1 and P2 married, both parents of C1 and C2."""
    persons = [
        make_person("P1", "Alice", birth_date=date(1940, 1, 1)),
        make_person("P2", "Bob", birth_date=date(1938, 6, 1)),
        make_person("C1", "Carol", birth_date=date(1965, 3, 3)),
        make_person("C2", "Dan", birth_date=date(1968, 4, 4)),
    ]
    return make_graph(
        persons,
        parent_child=[("P1", "C1"), ("P2", "C1"), ("P1", "C2"), ("P2", "C2")],
        spouses=[("P1", "P2")],
    )


@pytest.fixture
def chain_graph(make_person, make_graph) -> FamilyGraph:
    """Three generations in a line: A -> B -> C."""
    persons = [
        make_person("A", "Arthur", birth_date=date(1900, 1, 1)),
        make_person("B", "Beatrice", birth_date=date(1930, 1, 1)),
        make_person("C", "Charles", birth_date=date(1960, 1, 1)),
    ]
    return make_graph(persons, parent_child=[("A", "B"), ("B", "C")])


@pytest.fixture
def tagged_person() -> Person:
    """Birth date public, notes family, death date untagged."""
    return Person(
        id="X1",
        family_id="F1",
        given_name="Robert",
        family_name="Smith",
        birth_date=date(1940, 5, 15),
        death_date=date(2020, 3, 10),
        notes="Loved gardening.",
        privacy={
            SensitiveField.BIRTH_DATE: PrivacyTier.PUBLIC,
            SensitiveField.NOTES: PrivacyTier.FAMILY,
        },
    )


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def store() -> FamilyStore:
    """Connected in-memory store."""
    store = FamilyStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def service(store: FamilyStore) -> FamilyTreeService:
    return FamilyTreeService(store)


@pytest.fixture
def family(service: FamilyTreeService) -> Family:
    return service.create_family("The Smiths", "the-smiths")


@pytest.fixture
def demo_family(service: FamilyTreeService) -> Family:
    """Seeded three-generation demo family."""
    return seed_demo_family(service)
