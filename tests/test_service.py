"""Tests for the family tree service."""

from __future__ import annotations

import threading
from datetime import date

import pytest

from familylink.api.service import FamilyTreeService, MutationResult
from familylink.core.exceptions import NotFound, StructuralViolation, ValidationError
from familylink.core.models import Person, PrivacyTier, SensitiveField
from familylink.core.validation import RejectionReason
from familylink.seed import DEMO_SLUG, seed_demo_family


@pytest.fixture
def people(service: FamilyTreeService, family) -> dict[str, Person]:
    """Grandparent, parent and child with increasing birth dates."""
    return {
        key: service.create_person(family.id, given_name=given, family_name="Smith", birth_date=born)
        for key, given, born in [
            ("grand", "Arthur", date(1900, 1, 1)),
            ("parent", "Beatrice", date(1930, 1, 1)),
            ("child", "Charles", date(1960, 1, 1)),
        ]
    }


# =============================================================================
# Parent-Child Mutation Tests
# =============================================================================


class TestProposeParentChild:
    """Tests for proposing parent -> child edges."""

    def test_accepted(self, service, people):
        result = service.propose_parent_child(people["grand"].id, people["parent"].id)
        assert result.accepted
        assert result.edge.parent_id == people["grand"].id
        assert service.store.find_parent_child(people["grand"].id, people["parent"].id)

    def test_cycle_rejected_and_store_unchanged(self, service, people):
        a, b, c = people["grand"].id, people["parent"].id, people["child"].id
        assert service.propose_parent_child(a, b)
        assert service.propose_parent_child(b, c)

        result = service.propose_parent_child(c, a)
        assert not result.accepted
        assert result.reason == RejectionReason.CYCLE
        assert service.store.find_parent_child(c, a) is None

    def test_duplicate_rejected(self, service, people):
        a, b = people["grand"].id, people["parent"].id
        service.propose_parent_child(a, b)
        assert service.propose_parent_child(a, b).reason == RejectionReason.DUPLICATE

    def test_chronology_rejected(self, service, people):
        result = service.propose_parent_child(people["child"].id, people["grand"].id)
        assert result.reason == RejectionReason.CHRONOLOGY

    def test_missing_person(self, service, people):
        result = service.propose_parent_child(people["grand"].id, "missing")
        assert result.reason == RejectionReason.NOT_FOUND

    def test_self_reference(self, service, people):
        pid = people["grand"].id
        assert service.propose_parent_child(pid, pid).reason == RejectionReason.SELF_REFERENCE

    def test_cross_family(self, service, people):
        other = service.create_family("The Joneses", "the-joneses")
        stranger = service.create_person(other.id, given_name="Jim")
        result = service.propose_parent_child(people["grand"].id, stranger.id)
        assert result.reason == RejectionReason.CROSS_FAMILY

    def test_raise_for_rejection(self, service, people):
        pid = people["grand"].id
        with pytest.raises(StructuralViolation):
            service.propose_parent_child(pid, pid).raise_for_rejection()

    def test_concurrent_reverse_proposals(self, service, people):
        """Of two racing proposals that together form a cycle, exactly one wins."""
        a, b = people["grand"].id, people["parent"].id
        for person_id in (a, b):
            service.update_person(person_id, birth_date=None)

        barrier = threading.Barrier(2)
        results: list[MutationResult] = []

        def propose(parent_id, child_id):
            barrier.wait()
            results.append(service.propose_parent_child(parent_id, child_id))

        threads = [
            threading.Thread(target=propose, args=(a, b)),
            threading.Thread(target=propose, args=(b, a)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.accepted for r in results) == [False, True]
        rejected = next(r for r in results if not r.accepted)
        assert rejected.reason == RejectionReason.CYCLE

        graph = service.store.load_graph(people["grand"].family_id)
        assert graph.find_cycle() == []
        assert len(graph.parent_child_links) == 1


# =============================================================================
# Spouse Mutation Tests
# =============================================================================


class TestSpouseLinks:
    """Tests for proposing, ending and removing spouse links."""

    def test_link_and_duplicate(self, service, people):
        a, b = people["grand"].id, people["parent"].id
        assert service.propose_spouse_link(a, b, start_date=date(1950, 1, 1))
        result = service.propose_spouse_link(b, a)
        assert result.reason == RejectionReason.DUPLICATE

    def test_invalid_dates(self, service, people):
        result = service.propose_spouse_link(
            people["grand"].id, people["parent"].id,
            start_date=date(2000, 1, 1), end_date=date(1990, 1, 1),
        )
        assert result.reason == RejectionReason.INVALID_DATES

    def test_end_then_relink(self, service, people):
        a, b = people["grand"].id, people["parent"].id
        link = service.propose_spouse_link(a, b, start_date=date(1950, 1, 1)).edge

        ended = service.end_spouse_link(link.id, date(1960, 1, 1))
        assert ended.accepted
        assert ended.edge.end_date == date(1960, 1, 1)

        assert service.propose_spouse_link(b, a).accepted

    def test_end_defaults_to_today(self, service, people):
        link = service.propose_spouse_link(people["grand"].id, people["parent"].id).edge
        assert service.end_spouse_link(link.id).edge.end_date == date.today()

    def test_end_twice(self, service, people):
        link = service.propose_spouse_link(people["grand"].id, people["parent"].id).edge
        service.end_spouse_link(link.id, date(2000, 1, 1))
        assert service.end_spouse_link(link.id).reason == RejectionReason.INACTIVE

    def test_end_before_start(self, service, people):
        link = service.propose_spouse_link(
            people["grand"].id, people["parent"].id, start_date=date(1950, 1, 1)
        ).edge
        result = service.end_spouse_link(link.id, date(1940, 1, 1))
        assert result.reason == RejectionReason.INVALID_DATES

    def test_end_missing(self, service):
        assert service.end_spouse_link("missing").reason == RejectionReason.NOT_FOUND


class TestEdgeRemoval:
    def test_remove_parent_child(self, service, people):
        edge = service.propose_parent_child(people["grand"].id, people["parent"].id).edge
        result = service.propose_edge_removal(edge.id)
        assert result.accepted
        assert service.store.get_parent_child(edge.id) is None

    def test_remove_spouse(self, service, people):
        edge = service.propose_spouse_link(people["grand"].id, people["parent"].id).edge
        assert service.propose_edge_removal(edge.id).accepted
        assert service.store.get_spouse(edge.id) is None

    def test_remove_missing(self, service):
        assert service.propose_edge_removal("missing").reason == RejectionReason.NOT_FOUND


# =============================================================================
# Person Tests
# =============================================================================


class TestPersons:
    """Tests for person creation, update and reads."""

    def test_create_in_missing_family(self, service):
        with pytest.raises(NotFound):
            service.create_person("missing", given_name="Emma")

    def test_create_invalid(self, service, family):
        with pytest.raises(ValidationError) as exc_info:
            service.create_person(family.id, given_name="")
        assert exc_info.value.errors

    def test_duplicate_family_slug(self, service, family):
        with pytest.raises(ValidationError):
            service.create_family("Again", family.slug)

    def test_update_birth_date_checked(self, service, people):
        service.propose_parent_child(people["grand"].id, people["parent"].id)
        with pytest.raises(StructuralViolation) as exc_info:
            service.update_person(people["parent"].id, birth_date=date(1890, 1, 1))
        assert exc_info.value.reason == RejectionReason.CHRONOLOGY
        assert service.store.get_person(people["parent"].id).birth_date == date(1930, 1, 1)

    def test_update_other_fields(self, service, people):
        updated = service.update_person(people["child"].id, notes="Engineer")
        assert updated.notes == "Engineer"
        assert service.store.get_person(people["child"].id).notes == "Engineer"

    def test_delete_person(self, service, people):
        service.propose_parent_child(people["grand"].id, people["parent"].id)
        service.delete_person(people["grand"].id)
        graph = service.store.load_graph(people["parent"].family_id)
        assert graph.parents_of(people["parent"].id) == ()
        with pytest.raises(NotFound):
            service.delete_person(people["grand"].id)

    def test_get_person_redacts(self, service, family):
        person = service.create_person(
            family.id,
            given_name="Robert",
            birth_date=date(1940, 5, 15),
            notes="Private note",
            privacy={SensitiveField.BIRTH_DATE: PrivacyTier.PUBLIC},
        )
        view = service.get_person(person.id, PrivacyTier.PUBLIC)
        assert view["birthDate"] == date(1940, 5, 15)
        assert "notes" not in view
        assert "notes" not in service.get_person(person.id)
        assert service.get_person(person.id, PrivacyTier.PRIVATE)["notes"] == "Private note"

    def test_siblings(self, service, people, family):
        sibling = service.create_person(family.id, given_name="Diana", birth_date=date(1932, 1, 1))
        service.propose_parent_child(people["grand"].id, people["parent"].id)
        service.propose_parent_child(people["grand"].id, sibling.id)
        assert [p.id for p in service.get_siblings(people["parent"].id)] == [sibling.id]

    def test_search(self, service, people, family):
        assert [p.given_name for p in service.search_persons(family.id, "bea")] == ["Beatrice"]
        with pytest.raises(ValidationError):
            service.search_persons(family.id, "  ")


# =============================================================================
# Layout Tests
# =============================================================================


class TestDemoFamily:
    """Tests against the seeded demo family."""

    def test_seed_is_idempotent(self, service, demo_family):
        again = seed_demo_family(service)
        assert again.id == demo_family.id
        assert len(service.store.list_persons(demo_family.id)) == 10

    def test_generations(self, service, demo_family):
        layout = service.get_layout(demo_family.id)
        by_name = {n.payload["givenName"]: n.generation for n in layout.person_nodes()}
        assert by_name == {
            "Robert": 0, "Margaret": 0, "William": 0, "Eleanor": 0,
            "Michael": 1, "Sarah": 1, "David": 1,
            "Emma": 2, "James": 2, "Sophie": 2,
        }

    def test_edge_counts(self, service, demo_family):
        layout = service.get_layout(demo_family.id)
        assert len([e for e in layout.edges if e.kind == "parent-child"]) == 11
        assert len([e for e in layout.edges if e.kind == "spouse"]) == 3

    def test_family_tagged_fields_hidden_from_public(self, service, demo_family):
        family, layout = service.get_public_layout(DEMO_SLUG)
        assert family.id == demo_family.id
        for node in layout.person_nodes():
            assert "notes" not in node.payload
            assert "birthDate" not in node.payload

    def test_family_member_view(self, service, demo_family):
        layout = service.get_layout(demo_family.id, PrivacyTier.FAMILY, is_family_member=True)
        assert all("notes" in n.payload for n in layout.person_nodes())

    def test_unknown_slug(self, service):
        with pytest.raises(NotFound):
            service.get_public_layout("nobody")

    def test_unknown_family_layout(self, service):
        with pytest.raises(NotFound):
            service.get_layout("missing")


def test_get_family(service, family):
    assert service.get_family(family.id).slug == "the-smiths"
    with pytest.raises(NotFound):
        service.get_family("missing")


def test_update_family(service, family):
    other = service.create_family("The Joneses", "the-joneses")

    updated = service.update_family(family.id, name="The Smythes", slug="the-smythes")
    assert updated.name == "The Smythes"
    assert service.store.get_family_by_slug("the-smythes").id == family.id

    with pytest.raises(ValidationError):
        service.update_family(family.id, slug=other.slug)
    with pytest.raises(ValidationError):
        service.update_family(family.id, slug="Not A Slug")
    with pytest.raises(NotFound):
        service.update_family("missing", name="Nobody")


def test_default_viewer_is_public(service, family):
    """Reads without an explicit tier redact everything not tagged public."""
    person = service.create_person(
        family.id,
        given_name="Robert",
        birth_date=date(1940, 5, 15),
        notes="Family only",
        privacy={SensitiveField.NOTES: PrivacyTier.FAMILY},
    )
    assert "notes" not in service.get_person(person.id)
    assert "birthDate" not in service.get_person(person.id)
    (node,) = service.get_layout(family.id).person_nodes()
    assert "notes" not in node.payload


# =============================================================================
# Memory Tests
# =============================================================================


class TestMemories:
    """Tests for the family memory feed."""

    def test_create_and_get(self, service, family, people):
        memory = service.create_memory(
            family.id,
            title="Garden",
            body="Grandpa's roses.",
            author="Emma",
            tagged_person_ids=[people["grand"].id],
        )
        assert service.get_memory(memory.id).tagged_person_ids == [people["grand"].id]
        assert service.get_memory(memory.id).author == "Emma"

    def test_invalid_fields(self, service, family):
        with pytest.raises(ValidationError):
            service.create_memory(family.id, title="", body="text")
        with pytest.raises(ValidationError):
            service.create_memory(family.id, title="t", body="x" * 2001)
        with pytest.raises(ValidationError):
            service.create_memory(family.id, title="t", body="b", image_url="not a url")

    def test_blank_image_url_is_none(self, service, family):
        memory = service.create_memory(family.id, title="t", body="b", image_url="")
        assert memory.image_url is None

    def test_tag_must_belong_to_family(self, service, family, people):
        other = service.create_family("The Joneses", "the-joneses")
        stranger = service.create_person(other.id, given_name="Jim")
        with pytest.raises(ValidationError):
            service.create_memory(family.id, title="t", body="b", tagged_person_ids=[stranger.id])
        with pytest.raises(ValidationError):
            service.create_memory(family.id, title="t", body="b", tagged_person_ids=["missing"])
        assert service.get_memories(family.id) == []

    def test_missing_family(self, service):
        with pytest.raises(NotFound):
            service.create_memory("missing", title="t", body="b")
        with pytest.raises(NotFound):
            service.get_memories("missing")

    def test_update_is_partial(self, service, family, people):
        memory = service.create_memory(
            family.id, title="Draft", body="Body", tagged_person_ids=[people["grand"].id],
        )
        updated = service.update_memory(memory.id, title="Final", body=None)
        assert updated.title == "Final"
        assert updated.body == "Body"
        assert updated.tagged_person_ids == [people["grand"].id]

        retagged = service.update_memory(memory.id, tagged_person_ids=[people["child"].id])
        assert retagged.tagged_person_ids == [people["child"].id]
        with pytest.raises(ValidationError):
            service.update_memory(memory.id, tagged_person_ids=["missing"])

    def test_delete(self, service, family):
        memory = service.create_memory(family.id, title="t", body="b")
        service.delete_memory(memory.id)
        with pytest.raises(NotFound):
            service.get_memory(memory.id)
        with pytest.raises(NotFound):
            service.delete_memory(memory.id)

    def test_feed_filtered_by_person(self, service, family, people):
        grand, child = people["grand"].id, people["child"].id
        service.create_memory(family.id, title="One", body="b", tagged_person_ids=[grand])
        service.create_memory(family.id, title="Two", body="b", tagged_person_ids=[grand, child])
        assert {m.title for m in service.get_memories(family.id, child)} == {"Two"}
        assert len(service.get_memories(family.id)) == 2

    def test_deleted_person_is_untagged(self, service, family, people):
        grand, child = people["grand"].id, people["child"].id
        memory = service.create_memory(family.id, title="t", body="b", tagged_person_ids=[grand, child])
        service.delete_person(grand)
        assert service.get_memory(memory.id).tagged_person_ids == [child]

    def test_demo_memories(self, service, demo_family):
        memories = service.get_memories(demo_family.id)
        assert {m.title for m in memories} == {
            "Grandpa Robert's Garden", "Family Reunion 2019", "Emma's Graduation",
        }
        emma = next(p for p in service.store.list_persons(demo_family.id) if p.given_name == "Emma")
        assert len(service.get_memories(demo_family.id, emma.id)) == 2
