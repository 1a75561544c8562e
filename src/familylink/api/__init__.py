"""Service layer: mutation contract and reads over the family store."""

from familylink.api.service import FamilyTreeService, MutationResult

__all__ = ["FamilyTreeService", "MutationResult"]
