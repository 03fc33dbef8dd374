"""Taxonomy API route modules.

Each module exports a ``router`` (APIRouter instance) that
``occutax.web.app.create_app`` includes. Shared dependencies live in
``occutax.web.dependencies``; route-specific bodies in ``occutax.web.models``.

Usage:
    from occutax.web.routes import occupations
    app.include_router(occupations.router)
"""

from occutax.web.routes import (
    audit,
    auth,
    dashboard,
    groups,
    health,
    occupations,
    relationships,
    search,
    sources,
    synonyms,
    tree,
)

__all__ = [
    "audit",
    "auth",
    "dashboard",
    "groups",
    "health",
    "occupations",
    "relationships",
    "search",
    "sources",
    "synonyms",
    "tree",
]
