"""
Core data models for the family kinship graph.

These models enforce:
- Required name parts and field lengths
- A closed set of privacy-sensitive fields
- Chronological sanity on a single record (death after birth, start before end)

Structural rules that span several records (cycles, duplicate links) live in
the relationship validator, not here.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate an opaque record id."""
    return uuid4().hex


class PrivacyTier(str, Enum):
    """Visibility tier for a sensitive field, ordered least to most restrictive."""
    PUBLIC = "public"    # Visible to everyone, including share links
    FAMILY = "family"    # Visible to authenticated family members
    PRIVATE = "private"  # Visible only to the owner

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {
    PrivacyTier.PUBLIC: 0,
    PrivacyTier.FAMILY: 1,
    PrivacyTier.PRIVATE: 2,
}


class SensitiveField(str, Enum):
    """Person fields that carry a privacy tag."""
    BIRTH_DATE = "birthDate"
    DEATH_DATE = "deathDate"
    NOTES = "notes"

    @property
    def attribute(self) -> str:
        """Python attribute name on Person."""
        return _FIELD_ATTRIBUTES[self]


_FIELD_ATTRIBUTES = {
    SensitiveField.BIRTH_DATE: "birth_date",
    SensitiveField.DEATH_DATE: "death_date",
    SensitiveField.NOTES: "notes",
}


class WireModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
URL_PATTERN = re.compile(r"^https?://\S+$")


class Family(WireModel):
    """A family: the partition key for every person and edge."""
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(min_length=1, max_length=50)
    description: str | None = Field(None, max_length=500)
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        if not SLUG_PATTERN.match(v):
            raise ValueError(
                "Slug must contain only lowercase letters, numbers, and hyphens"
            )
        return v


class Person(WireModel):
    """
    Individual family member.

    The privacy map tags each sensitive field with a tier. Fields without a
    tag resolve to PRIVATE.
    """
    id: str = Field(default_factory=new_id)
    family_id: str

    # Names
    given_name: str = Field(min_length=1, max_length=50)
    middle_name: str | None = Field(None, max_length=50)
    family_name: str | None = Field(None, max_length=50)

    gender: str | None = Field(None, max_length=20)

    # Vital dates
    birth_date: date | None = None
    death_date: date | None = None

    avatar_url: str | None = None
    notes: str | None = Field(None, max_length=1000)

    privacy: dict[SensitiveField, PrivacyTier] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("middle_name", "family_name", "gender", "avatar_url", "notes", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Form posts send empty strings for omitted optional fields."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_dates(self) -> "Person":
        if self.birth_date and self.death_date and self.death_date < self.birth_date:
            raise ValueError(
                f"Death ({self.death_date}) before birth ({self.birth_date})"
            )
        return self

    def full_name(self) -> str:
        """Given and family name, used as the ordering key in layouts."""
        return f"{self.given_name} {self.family_name or ''}".strip()

    def display_name(self) -> str:
        """Given [Middle] Family."""
        parts = [self.given_name, self.middle_name, self.family_name]
        return " ".join(p for p in parts if p)

    def privacy_tier(self, field: SensitiveField) -> PrivacyTier:
        """Tier tagged on a sensitive field, PRIVATE when untagged."""
        return self.privacy.get(field, PrivacyTier.PRIVATE)


class ParentChildEdge(WireModel):
    """Directed parent -> child link."""
    id: str = Field(default_factory=new_id)
    parent_id: str
    child_id: str
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def key(self) -> tuple[str, str]:
        return (self.parent_id, self.child_id)


class SpouseEdge(WireModel):
    """Unordered spousal link. Active until an end date is recorded."""
    id: str = Field(default_factory=new_id)
    a_id: str
    b_id: str
    start_date: date | None = None
    end_date: date | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def validate_dates(self) -> "SpouseEdge":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError(
                f"Spouse link ends ({self.end_date}) before it starts ({self.start_date})"
            )
        return self

    @property
    def is_active(self) -> bool:
        return self.end_date is None

    @property
    def key(self) -> tuple[str, str]:
        """Canonical (smaller id first) pair."""
        return canonical_pair(self.a_id, self.b_id)

    def other(self, person_id: str) -> str:
        return self.b_id if self.a_id == person_id else self.a_id


class PersonRecord(Person):
    """
    A person together with the edges incident to it, as read from storage.

    parent_links holds edges where this person is the child, child_links edges
    where this person is the parent.
    """
    parent_links: list[ParentChildEdge] = Field(default_factory=list)
    child_links: list[ParentChildEdge] = Field(default_factory=list)
    spouse_links: list[SpouseEdge] = Field(default_factory=list)

    def to_person(self) -> Person:
        """Drop the incident edges."""
        return Person.model_validate(
            self.model_dump(exclude={"parent_links", "child_links", "spouse_links"})
        )


def canonical_pair(a_id: str, b_id: str) -> tuple[str, str]:
    """Order two ids so an unordered pair always yields the same tuple."""
    return (a_id, b_id) if a_id <= b_id else (b_id, a_id)


class Memory(WireModel):
    """
    A dated story or photo posted to a family's feed.

    tagged_person_ids names the persons the memory is about; each must belong
    to the same family.
    """
    id: str = Field(default_factory=new_id)
    family_id: str
    author: str | None = Field(None, max_length=100)
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1, max_length=2000)
    image_url: str | None = None
    tagged_person_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("author", "image_url", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: str | None) -> str | None:
        if v is not None and not URL_PATTERN.match(v):
            raise ValueError("Image URL must be an http(s) URL")
        return v

    @field_validator("tagged_person_ids")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    def tags(self, person_id: str) -> bool:
        return person_id in self.tagged_person_ids
