"""
Per-field privacy redaction for person records.

Every field decision is independent: a sensitive field is shown when its
tagged tier is at or below the viewer's effective tier. Untagged fields
resolve to PRIVATE and are therefore shown only to the owner.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable

from familylink.core.models import Person, PrivacyTier, SensitiveField

# Fields returned to every viewer.
ALWAYS_VISIBLE = frozenset({
    "id",
    "family_id",
    "given_name",
    "middle_name",
    "family_name",
    "gender",
    "avatar_url",
    "created_at",
    "updated_at",
})


class PrivacyFilter:
    """Projects person records down to what a viewer may see."""

    def effective_tier(self, viewer_tier: PrivacyTier | str, is_family_member: bool = False) -> PrivacyTier:
        """
        Resolve the tier a viewer actually reads at.

        A FAMILY viewer who is not an authenticated member reads at PUBLIC.
        """
        tier = PrivacyTier(viewer_tier)
        if tier == PrivacyTier.FAMILY and not is_family_member:
            return PrivacyTier.PUBLIC
        return tier

    def is_visible(self, person: Person, field: SensitiveField, effective: PrivacyTier) -> bool:
        if effective == PrivacyTier.PRIVATE:
            return True
        return person.privacy_tier(field).rank <= effective.rank

    def visible_fields(self, person: Person, viewer_tier: PrivacyTier | str, is_family_member: bool = False) -> set[str]:
        """Attribute names of person visible to the viewer."""
        effective = self.effective_tier(viewer_tier, is_family_member)
        fields = set(ALWAYS_VISIBLE)
        for field in SensitiveField:
            if self.is_visible(person, field, effective):
                fields.add(field.attribute)
        return fields

    def project(
        self,
        person: Person,
        viewer_tier: PrivacyTier | str,
        is_family_member: bool = False,
        by_alias: bool = True,
    ) -> dict[str, Any]:
        """
        Partial person for a viewer.

        Hidden fields are absent from the result, not set to None. Keys are
        camelCase wire names unless by_alias is False.
        """
        include = self.visible_fields(person, viewer_tier, is_family_member)
        return person.model_dump(include=include, by_alias=by_alias)

    def project_many(
        self,
        persons: Iterable[Person],
        viewer_tier: PrivacyTier | str,
        is_family_member: bool = False,
    ) -> list[dict[str, Any]]:
        return [self.project(p, viewer_tier, is_family_member) for p in persons]


def format_life_years(birth_date: date | None, death_date: date | None = None) -> str:
    """Format a lifespan as "1940 - 2020", "1942 - Present" or "Unknown"."""
    if not birth_date:
        return "Unknown"
    if death_date:
        return f"{birth_date.year} - {death_date.year}"
    return f"{birth_date.year} - Present"
