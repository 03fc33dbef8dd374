"""Error taxonomy shared by the store, graph, merge and audit layers.

Every error carries a stable ``code`` (surfaced to API callers) and the HTTP
status the web layer maps it to. Messages are written for a human operator and
name the entity that caused the failure.
"""

from __future__ import annotations


class TaxonomyError(Exception):
    """Base class for all caller-visible taxonomy failures."""

    code = "TaxonomyError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class InvalidArgument(TaxonomyError):
    code = "InvalidArgument"
    status_code = 400


class InvalidShape(InvalidArgument):
    """Relationship endpoints/kind combination that can never be valid."""

    code = "InvalidShape"


class SelfReference(InvalidArgument):
    code = "SelfReference"


class NotFound(TaxonomyError):
    code = "NotFound"
    status_code = 404


class ParentNotFound(NotFound):
    code = "ParentNotFound"


class Conflict(TaxonomyError):
    code = "Conflict"
    status_code = 409


class ConflictExistingParent(Conflict):
    code = "ConflictExistingParent"


class DuplicateSynonymTitle(Conflict):
    code = "DuplicateSynonymTitle"


class DuplicateOccupationLabel(Conflict):
    code = "DuplicateOccupationLabel"


class IntegrityViolation(TaxonomyError):
    """Structural violation of the hierarchy; never auto-resolved."""

    code = "IntegrityViolation"
    status_code = 422


class CircularRelationship(IntegrityViolation):
    code = "CircularRelationship"


class MergeWouldBreakHierarchy(IntegrityViolation):
    code = "MergeWouldBreakHierarchy"


class InternalError(TaxonomyError):
    """Unexpected storage failure; the message never leaks internals."""

    code = "Internal"
    status_code = 500

    def __init__(self, message: str = "An internal error occurred"):
        super().__init__(message)
