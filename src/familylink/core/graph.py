"""
Id-keyed adjacency for a single family.

The graph is rebuilt from stored records on every read. Degenerate edges
(self-references, dangling ids, cross-family links) are dropped here so that
nothing downstream has to guard against them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

import networkx as nx

from familylink.core.models import (
    ParentChildEdge,
    Person,
    PersonRecord,
    SpouseEdge,
    canonical_pair,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adjacency:
    """Neighbour ids of one person."""
    parents: tuple[str, ...] = ()
    children: tuple[str, ...] = ()
    spouses: tuple[str, ...] = ()


_EMPTY = Adjacency()


@dataclass(frozen=True)
class FamilyGraph:
    """
    Immutable kinship graph derived from person records.

    lineage is a networkx DiGraph with one node per person and one
    parent -> child edge per recorded parent-child link; ancestry and cycle
    queries run on it.
    """
    persons: Mapping[str, Person]
    adjacency: Mapping[str, Adjacency]
    parent_child_links: Mapping[tuple[str, str], ParentChildEdge]
    spouse_links: Mapping[tuple[str, str], SpouseEdge]
    family_id: str | None = None
    order: tuple[str, ...] = field(default=())
    lineage: nx.DiGraph = field(default_factory=nx.DiGraph, compare=False, repr=False)

    def __contains__(self, person_id: object) -> bool:
        return person_id in self.persons

    def __len__(self) -> int:
        return len(self.persons)

    def person(self, person_id: str) -> Person | None:
        return self.persons.get(person_id)

    def parents_of(self, person_id: str) -> tuple[str, ...]:
        return self.adjacency.get(person_id, _EMPTY).parents

    def children_of(self, person_id: str) -> tuple[str, ...]:
        return self.adjacency.get(person_id, _EMPTY).children

    def spouses_of(self, person_id: str) -> tuple[str, ...]:
        return self.adjacency.get(person_id, _EMPTY).spouses

    def roots(self) -> list[str]:
        """Persons with no recorded parents, in input order."""
        return [pid for pid in self.order if not self.parents_of(pid)]

    def ancestors(self, person_id: str) -> set[str]:
        """All ids reachable by walking parent links upward."""
        if person_id not in self.lineage:
            return set()
        return set(nx.ancestors(self.lineage, person_id))

    def descendants(self, person_id: str) -> set[str]:
        if person_id not in self.lineage:
            return set()
        return set(nx.descendants(self.lineage, person_id))

    def is_ancestor(self, candidate_id: str, person_id: str) -> bool:
        """True when a chain of parent links leads from person_id up to candidate_id."""
        if candidate_id == person_id:
            return False
        if candidate_id not in self.lineage or person_id not in self.lineage:
            return False
        return nx.has_path(self.lineage, candidate_id, person_id)

    def find_cycle(self) -> list[str]:
        """Ids along one parent-child cycle, or [] when the lineage is acyclic."""
        try:
            cycle = nx.find_cycle(self.lineage, orientation="original")
        except nx.NetworkXNoCycle:
            return []
        return [edge[0] for edge in cycle]

    def siblings(self, person_id: str) -> list[str]:
        """Other children of any of this person's parents (full and half siblings)."""
        result: list[str] = []
        for parent_id in self.parents_of(person_id):
            for child_id in self.children_of(parent_id):
                if child_id != person_id and child_id not in result:
                    result.append(child_id)
        return result

    def has_parent_child(self, parent_id: str, child_id: str) -> bool:
        return (parent_id, child_id) in self.parent_child_links

    def spouse_link(self, a_id: str, b_id: str) -> SpouseEdge | None:
        """Stored link for the pair in either orientation, active or not."""
        return self.spouse_links.get(canonical_pair(a_id, b_id))

    def active_spouse_link(self, a_id: str, b_id: str) -> SpouseEdge | None:
        link = self.spouse_link(a_id, b_id)
        if link is not None and link.is_active:
            return link
        return None


def _prefer(current: SpouseEdge, candidate: SpouseEdge) -> SpouseEdge:
    """Pick which of two records for the same spouse pair represents it."""
    if current.is_active != candidate.is_active:
        return current if current.is_active else candidate
    return candidate if candidate.created_at > current.created_at else current


def build_graph(records: Iterable[PersonRecord | Person]) -> FamilyGraph:
    """
    Build adjacency lists from person records and their incident edges.

    Args:
        records: Persons of one family. PersonRecord instances contribute
            their parent_links, child_links and spouse_links; plain Person
            instances become isolated nodes.

    Returns:
        FamilyGraph with deduplicated, self-loop-free, family-local edges.
    """
    persons: dict[str, Person] = {}
    pc_edges: dict[tuple[str, str], ParentChildEdge] = {}
    spouse_edges: dict[tuple[str, str], SpouseEdge] = {}
    raw_pc: list[ParentChildEdge] = []
    raw_spouse: list[SpouseEdge] = []

    for record in records:
        if record.id in persons:
            continue
        if isinstance(record, PersonRecord):
            persons[record.id] = record.to_person()
            raw_pc.extend(record.parent_links)
            raw_pc.extend(record.child_links)
            raw_spouse.extend(record.spouse_links)
        else:
            persons[record.id] = record

    def usable(a_id: str, b_id: str, kind: str) -> bool:
        if a_id == b_id:
            logger.debug("Dropping self-referential %s edge on %s", kind, a_id)
            return False
        a, b = persons.get(a_id), persons.get(b_id)
        if a is None or b is None:
            logger.debug("Dropping dangling %s edge %s-%s", kind, a_id, b_id)
            return False
        if a.family_id != b.family_id:
            logger.debug("Dropping cross-family %s edge %s-%s", kind, a_id, b_id)
            return False
        return True

    for edge in raw_pc:
        if edge.key in pc_edges or not usable(edge.parent_id, edge.child_id, "parent-child"):
            continue
        pc_edges[edge.key] = edge

    for edge in raw_spouse:
        if not usable(edge.a_id, edge.b_id, "spouse"):
            continue
        existing = spouse_edges.get(edge.key)
        spouse_edges[edge.key] = edge if existing is None else _prefer(existing, edge)

    parents: dict[str, list[str]] = {pid: [] for pid in persons}
    children: dict[str, list[str]] = {pid: [] for pid in persons}
    spouses: dict[str, list[str]] = {pid: [] for pid in persons}

    for parent_id, child_id in pc_edges:
        children[parent_id].append(child_id)
        parents[child_id].append(parent_id)

    for a_id, b_id in spouse_edges:
        spouses[a_id].append(b_id)
        spouses[b_id].append(a_id)

    adjacency = {
        pid: Adjacency(
            parents=tuple(parents[pid]),
            children=tuple(children[pid]),
            spouses=tuple(spouses[pid]),
        )
        for pid in persons
    }

    lineage = nx.DiGraph()
    lineage.add_nodes_from(persons)
    lineage.add_edges_from(pc_edges)

    family_ids = {p.family_id for p in persons.values()}

    return FamilyGraph(
        persons=MappingProxyType(persons),
        adjacency=MappingProxyType(adjacency),
        parent_child_links=MappingProxyType(pc_edges),
        spouse_links=MappingProxyType(spouse_edges),
        family_id=family_ids.pop() if len(family_ids) == 1 else None,
        order=tuple(persons),
        lineage=lineage,
    )


def attach_links(
    persons: Iterable[Person],
    parent_child_edges: Iterable[ParentChildEdge],
    spouse_edges: Iterable[SpouseEdge],
) -> list[PersonRecord]:
    """Distribute flat edge tables onto the persons they touch."""
    records = {
        p.id: PersonRecord.model_validate(
            p.model_dump(exclude={"parent_links", "child_links", "spouse_links"})
        )
        for p in persons
    }

    for edge in parent_child_edges:
        if edge.child_id in records:
            records[edge.child_id].parent_links.append(edge)
        if edge.parent_id in records:
            records[edge.parent_id].child_links.append(edge)

    for edge in spouse_edges:
        if edge.a_id in records:
            records[edge.a_id].spouse_links.append(edge)
        if edge.b_id in records and edge.b_id != edge.a_id:
            records[edge.b_id].spouse_links.append(edge)

    return list(records.values())
