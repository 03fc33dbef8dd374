"""Hierarchy operations over the taxonomy relationship graph."""

from occutax.graph.merge import merge_occupations
from occutax.graph.relationships import assign_parent, create_relationship, get_children, get_roots

__all__ = [
    "assign_parent",
    "create_relationship",
    "get_children",
    "get_roots",
    "merge_occupations",
]
