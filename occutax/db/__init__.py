"""Database layer for the occupation taxonomy with async SQLAlchemy."""

from occutax.db.connection import get_session, init_db
from occutax.db.models import (
    AuditLogModel,
    Base,
    OccupationModel,
    SynonymModel,
    TaxonomyGroupModel,
    TaxonomyRelationshipModel,
    TaxonomySourceModel,
)

__all__ = [
    "AuditLogModel",
    "Base",
    "OccupationModel",
    "SynonymModel",
    "TaxonomyGroupModel",
    "TaxonomyRelationshipModel",
    "TaxonomySourceModel",
    "get_session",
    "init_db",
]
