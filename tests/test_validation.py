"""Tests for relationship validation."""

from __future__ import annotations

from datetime import date

import pytest

from familylink.core.exceptions import NotFound, StructuralViolation
from familylink.core.graph import attach_links, build_graph
from familylink.core.validation import RejectionReason, RelationshipValidator, ValidationResult


@pytest.fixture
def validator() -> RelationshipValidator:
    return RelationshipValidator()


# =============================================================================
# Parent-Child Tests
# =============================================================================


class TestParentChild:
    """Tests for proposed parent -> child edges."""

    def test_valid_edge_accepted(self, validator, chain_graph):
        result = validator.validate_parent_child("A", "C", chain_graph)
        assert result.is_valid
        assert result.reason is None

    def test_self_reference(self, validator, chain_graph):
        result = validator.validate_parent_child("A", "A", chain_graph)
        assert result.reason == RejectionReason.SELF_REFERENCE

    def test_missing_person(self, validator, chain_graph):
        result = validator.validate_parent_child("A", "NOPE", chain_graph)
        assert result.reason == RejectionReason.NOT_FOUND
        assert "NOPE" in result.message

    def test_duplicate(self, validator, chain_graph):
        result = validator.validate_parent_child("A", "B", chain_graph)
        assert result.reason == RejectionReason.DUPLICATE

    def test_direct_reverse_is_cycle(self, validator, chain_graph):
        result = validator.validate_parent_child("B", "A", chain_graph)
        assert result.reason == RejectionReason.CYCLE

    def test_transitive_cycle_rejected(self, validator, chain_graph):
        """With A -> B -> C recorded, C cannot become a parent of A."""
        result = validator.validate_parent_child("C", "A", chain_graph)
        assert not result
        assert result.reason == RejectionReason.CYCLE

    def test_parent_must_be_older(self, make_person, make_graph, validator):
        graph = make_graph([
            make_person("Y", "Young", birth_date=date(1990, 1, 1)),
            make_person("O", "Old", birth_date=date(1950, 1, 1)),
        ])
        result = validator.validate_parent_child("Y", "O", graph)
        assert result.reason == RejectionReason.CHRONOLOGY

    def test_same_birth_date_rejected(self, make_person, make_graph, validator):
        born = date(1970, 7, 7)
        graph = make_graph([
            make_person("X", "Xavier", birth_date=born),
            make_person("Z", "Zoe", birth_date=born),
        ])
        assert validator.validate_parent_child("X", "Z", graph).reason == RejectionReason.CHRONOLOGY

    def test_missing_birth_dates_skip_chronology(self, make_person, make_graph, validator):
        graph = make_graph([make_person("X", "Xavier"), make_person("Z", "Zoe")])
        assert validator.validate_parent_child("X", "Z", graph)
        assert validator.validate_parent_child("Z", "X", graph)

    def test_cross_family(self, make_person, make_graph, validator):
        graph = make_graph([
            make_person("X", "Xavier"),
            make_person("Z", "Zoe", family_id="F2"),
        ])
        assert validator.validate_parent_child("X", "Z", graph).reason == RejectionReason.CROSS_FAMILY

    def test_validation_is_pure(self, validator, chain_graph):
        before = dict(chain_graph.parent_child_links)
        validator.validate_parent_child("A", "C", chain_graph)
        validator.validate_parent_child("C", "A", chain_graph)
        assert dict(chain_graph.parent_child_links) == before


# =============================================================================
# Spouse Tests
# =============================================================================


class TestSpouseLink:
    """Tests for proposed spouse links."""

    def test_new_pair_accepted(self, validator, chain_graph):
        assert validator.validate_spouse_link("A", "C", chain_graph)

    def test_self_reference(self, validator, chain_graph):
        assert validator.validate_spouse_link("A", "A", chain_graph).reason == RejectionReason.SELF_REFERENCE

    def test_duplicate_in_either_orientation(self, validator, two_generation_graph):
        for a, b in [("P1", "P2"), ("P2", "P1")]:
            result = validator.validate_spouse_link(a, b, two_generation_graph)
            assert result.reason == RejectionReason.DUPLICATE

    def test_ended_link_allows_new_one(self, make_person, make_graph, validator):
        graph = make_graph(
            [make_person("A", "Ann"), make_person("B", "Ben")],
            spouses=[("A", "B")],
        )
        link = graph.spouse_link("A", "B")
        ended = link.model_copy(update={"end_date": date(2000, 1, 1)})
        graph = build_graph(attach_links(graph.persons.values(), [], [ended]))
        assert validator.validate_spouse_link("B", "A", graph)


# =============================================================================
# Removal and Update Tests
# =============================================================================


class TestRemovalAndEnd:
    """Tests for edge removal and ending spouse links."""

    def test_parent_child_removal(self, validator, chain_graph):
        assert validator.validate_parent_child_removal("A", "B", chain_graph)
        result = validator.validate_parent_child_removal("A", "C", chain_graph)
        assert result.reason == RejectionReason.NOT_FOUND

    def test_spouse_removal(self, validator, two_generation_graph):
        assert validator.validate_spouse_removal("P2", "P1", two_generation_graph)
        result = validator.validate_spouse_removal("C1", "C2", two_generation_graph)
        assert result.reason == RejectionReason.NOT_FOUND

    def test_spouse_end(self, validator, two_generation_graph):
        assert validator.validate_spouse_end("P1", "P2", date(2001, 1, 1), two_generation_graph)

    def test_spouse_end_missing(self, validator, two_generation_graph):
        result = validator.validate_spouse_end("C1", "C2", date(2001, 1, 1), two_generation_graph)
        assert result.reason == RejectionReason.NOT_FOUND


class TestBirthDate:
    """Tests for birth date changes against existing edges."""

    def test_later_than_child_rejected(self, validator, chain_graph):
        result = validator.validate_birth_date("B", date(1970, 1, 1), chain_graph)
        assert result.reason == RejectionReason.CHRONOLOGY

    def test_earlier_than_parent_rejected(self, validator, chain_graph):
        result = validator.validate_birth_date("B", date(1890, 1, 1), chain_graph)
        assert result.reason == RejectionReason.CHRONOLOGY

    def test_between_parent_and_child_accepted(self, validator, chain_graph):
        assert validator.validate_birth_date("B", date(1935, 1, 1), chain_graph)

    def test_cleared_birth_date_accepted(self, validator, chain_graph):
        assert validator.validate_birth_date("B", None, chain_graph)


class TestValidationResult:
    """Tests for converting results into exceptions."""

    def test_accept_does_not_raise(self):
        ValidationResult.accept().raise_for_rejection()

    def test_not_found_raises_not_found(self):
        with pytest.raises(NotFound):
            ValidationResult.reject(RejectionReason.NOT_FOUND, "missing").raise_for_rejection()

    def test_structural_rejection_raises_violation(self):
        with pytest.raises(StructuralViolation) as exc_info:
            ValidationResult.reject(RejectionReason.CYCLE, "loop").raise_for_rejection()
        assert exc_info.value.reason == RejectionReason.CYCLE
        assert exc_info.value.message == "loop"
