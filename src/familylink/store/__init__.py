"""Persistence for families, persons and relationships."""

from familylink.store.client import FamilyStore

__all__ = ["FamilyStore"]
