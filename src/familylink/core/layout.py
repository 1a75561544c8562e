"""
Generational layout for a family graph.

Algorithm:
1. Generation assignment by multi-source BFS from parentless persons
2. Spousal alignment: spouses the BFS never reached inherit their partner's generation
3. Grouping by generation, ordered by full name
4. Positioning on a grid of horizontal bands
5. One connector node and one edge per same-generation spouse pair
6. One edge per parent-child adjacency

The engine is pure: the same graph always produces the same layout.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field

from familylink.core.graph import FamilyGraph
from familylink.core.models import Person, SpouseEdge, WireModel

logger = logging.getLogger(__name__)

PersonProjection = Callable[[Person], dict[str, Any]]


@dataclass
class LayoutConfig:
    """Grid spacing for the rendered tree."""
    generation_height: float = 200.0  # Vertical distance between generations
    node_spacing: float = 150.0       # Horizontal distance between siblings in a band
    connector_offset: float = 30.0    # Spouse connectors sit this far above their band


class Position(BaseModel):
    x: float
    y: float


class TreeNode(WireModel):
    id: str
    kind: Literal["person", "spouse-connector"]
    payload: dict[str, Any] = Field(default_factory=dict)
    position: Position
    generation: int


class TreeEdge(WireModel):
    id: str
    source_id: str
    target_id: str
    kind: Literal["parent-child", "spouse"]


class TreeLayout(WireModel):
    nodes: list[TreeNode] = Field(default_factory=list)
    edges: list[TreeEdge] = Field(default_factory=list)

    def node(self, node_id: str) -> TreeNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def person_nodes(self) -> list[TreeNode]:
        return [n for n in self.nodes if n.kind == "person"]

    def generations(self) -> dict[str, int]:
        """Person id -> generation."""
        return {n.id: n.generation for n in self.person_nodes()}


def spouse_pair_id(a_id: str, b_id: str) -> str:
    lo, hi = sorted((a_id, b_id))
    return f"spouse-{lo}-{hi}"


def parent_child_id(parent_id: str, child_id: str) -> str:
    return f"parent-child-{parent_id}-{child_id}"


def _full_record(person: Person) -> dict[str, Any]:
    return person.model_dump(by_alias=True)


class LayoutEngine:
    """Computes node positions and edges for a family graph."""

    def __init__(self, config: LayoutConfig | None = None):
        self.config = config or LayoutConfig()

    # =========================================
    # Generations
    # =========================================

    def _bfs(self, graph: FamilyGraph, generations: dict[str, int], seeds: list[str]) -> None:
        """Assign depths below the seeds; already placed persons are frozen."""
        queue = deque((pid, generations[pid]) for pid in seeds)
        while queue:
            person_id, depth = queue.popleft()
            for child_id in graph.children_of(person_id):
                if child_id not in generations:
                    generations[child_id] = depth + 1
                    queue.append((child_id, depth + 1))

    def _align_spouses(self, graph: FamilyGraph, generations: dict[str, int]) -> list[str]:
        """Give unplaced spouses their partner's generation. Returns newly placed ids."""
        placed: list[str] = []
        changed = True
        while changed:
            changed = False
            for person_id in graph.order:
                if person_id in generations:
                    continue
                partner_generations = [
                    generations[s] for s in graph.spouses_of(person_id) if s in generations
                ]
                if partner_generations:
                    generations[person_id] = min(partner_generations)
                    placed.append(person_id)
                    changed = True
        return placed

    def assign_generations(self, graph: FamilyGraph) -> dict[str, int]:
        """
        Generation number for every person in the graph.

        Every parentless person seeds the BFS at generation 0. Persons the
        BFS cannot reach sit on a parent-child cycle or below one; those with
        a placed spouse take the spouse's generation and pass it down. Anything
        still left over lands on generation 0.
        """
        generations: dict[str, int] = {}

        roots = graph.roots()
        for root in roots:
            generations[root] = 0
        self._bfs(graph, generations, roots)

        while True:
            aligned = self._align_spouses(graph, generations)
            if aligned:
                self._bfs(graph, generations, aligned)
                continue
            leftover = next((pid for pid in graph.order if pid not in generations), None)
            if leftover is None:
                break
            logger.warning(
                "Person %s unreachable from any root (cycle %s); placing at generation 0",
                leftover, graph.find_cycle(),
            )
            generations[leftover] = 0
            self._bfs(graph, generations, [leftover])

        for a_id, b_id in graph.spouse_links:
            if generations[a_id] != generations[b_id]:
                logger.debug(
                    "Spouses %s and %s sit in generations %d and %d",
                    a_id, b_id, generations[a_id], generations[b_id],
                )

        return generations

    def group_by_generation(self, graph: FamilyGraph, generations: dict[str, int]) -> dict[int, list[Person]]:
        """Persons per generation, ascending, each band sorted by full name then id."""
        bands: dict[int, list[Person]] = {}
        for person_id in graph.order:
            bands.setdefault(generations[person_id], []).append(graph.persons[person_id])

        for band in bands.values():
            band.sort(key=lambda p: (p.full_name(), p.id))

        return dict(sorted(bands.items()))

    # =========================================
    # Layout
    # =========================================

    def compute(self, graph: FamilyGraph, project: PersonProjection | None = None) -> TreeLayout:
        """
        Compute the full layout.

        Args:
            graph: Family graph to lay out
            project: Maps a person to its node payload. Defaults to the full
                record; pass a privacy projection for non-owner viewers.

        Returns:
            TreeLayout with person nodes, spouse connectors and edges
        """
        if not graph.persons:
            return TreeLayout()

        project = project or _full_record
        cfg = self.config

        generations = self.assign_generations(graph)
        bands = self.group_by_generation(graph, generations)

        nodes: list[TreeNode] = []
        edges: list[TreeEdge] = []
        x_of: dict[str, float] = {}

        pairs_by_generation: dict[int, list[tuple[str, str, SpouseEdge]]] = {}
        for (a_id, b_id), link in sorted(graph.spouse_links.items()):
            if generations[a_id] == generations[b_id]:
                pairs_by_generation.setdefault(generations[a_id], []).append((a_id, b_id, link))

        for generation, band in bands.items():
            y = generation * cfg.generation_height
            start_x = -(len(band) - 1) * cfg.node_spacing / 2

            for i, person in enumerate(band):
                x = start_x + i * cfg.node_spacing
                x_of[person.id] = x
                nodes.append(TreeNode(
                    id=person.id,
                    kind="person",
                    payload=project(person),
                    position=Position(x=x, y=y),
                    generation=generation,
                ))

            for a_id, b_id, link in pairs_by_generation.get(generation, []):
                pair_id = spouse_pair_id(a_id, b_id)
                nodes.append(TreeNode(
                    id=pair_id,
                    kind="spouse-connector",
                    payload={
                        "aId": a_id,
                        "bId": b_id,
                        "startDate": link.start_date,
                        "endDate": link.end_date,
                        "active": link.is_active,
                    },
                    position=Position(x=(x_of[a_id] + x_of[b_id]) / 2, y=y - cfg.connector_offset),
                    generation=generation,
                ))
                edges.append(TreeEdge(
                    id=pair_id,
                    source_id=a_id,
                    target_id=b_id,
                    kind="spouse",
                ))

        seen: set[str] = set()
        for person_id in graph.order:
            for child_id in graph.children_of(person_id):
                edge_id = parent_child_id(person_id, child_id)
                if edge_id in seen:
                    continue
                seen.add(edge_id)
                edges.append(TreeEdge(
                    id=edge_id,
                    source_id=person_id,
                    target_id=child_id,
                    kind="parent-child",
                ))

        return TreeLayout(nodes=nodes, edges=edges)


def compute_tree_layout(
    graph: FamilyGraph,
    project: PersonProjection | None = None,
    config: LayoutConfig | None = None,
) -> TreeLayout:
    """Convenience wrapper around LayoutEngine.compute."""
    return LayoutEngine(config).compute(graph, project)
