"""
FamilyLink

Kinship graph, generational tree layout and privacy redaction for family trees.
"""

__version__ = "0.1.0"

from familylink.core.graph import FamilyGraph, build_graph
from familylink.core.layout import LayoutEngine, TreeLayout
from familylink.core.models import Family, Memory, ParentChildEdge, Person, PrivacyTier, SpouseEdge
from familylink.core.privacy import PrivacyFilter
from familylink.core.validation import RelationshipValidator

__all__ = [
    "Family",
    "FamilyGraph",
    "LayoutEngine",
    "Memory",
    "ParentChildEdge",
    "Person",
    "PrivacyFilter",
    "PrivacyTier",
    "RelationshipValidator",
    "SpouseEdge",
    "TreeLayout",
    "build_graph",
]
