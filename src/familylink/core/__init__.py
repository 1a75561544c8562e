"""Core graph model, validation, layout and privacy for family trees."""

from familylink.core.exceptions import (
    FamilyLinkError,
    NotFound,
    StructuralViolation,
    ValidationError,
)
from familylink.core.graph import Adjacency, FamilyGraph, attach_links, build_graph
from familylink.core.layout import (
    LayoutConfig,
    LayoutEngine,
    TreeEdge,
    TreeLayout,
    TreeNode,
    compute_tree_layout,
)
from familylink.core.models import (
    Family,
    Memory,
    ParentChildEdge,
    Person,
    PersonRecord,
    PrivacyTier,
    SensitiveField,
    SpouseEdge,
    canonical_pair,
)
from familylink.core.privacy import PrivacyFilter, format_life_years
from familylink.core.validation import RejectionReason, RelationshipValidator, ValidationResult

__all__ = [
    "Adjacency",
    "Family",
    "FamilyGraph",
    "FamilyLinkError",
    "LayoutConfig",
    "LayoutEngine",
    "Memory",
    "NotFound",
    "ParentChildEdge",
    "Person",
    "PersonRecord",
    "PrivacyFilter",
    "PrivacyTier",
    "RejectionReason",
    "RelationshipValidator",
    "SensitiveField",
    "SpouseEdge",
    "StructuralViolation",
    "TreeEdge",
    "TreeLayout",
    "TreeNode",
    "ValidationError",
    "ValidationResult",
    "attach_links",
    "build_graph",
    "canonical_pair",
    "compute_tree_layout",
    "format_life_years",
]
