"""Request/response models for the taxonomy API.

Entity payloads live in ``occutax.store.models``; the models here only cover
route-specific bodies.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class MergeRequest(BaseModel):
    """Used by: POST /api/occupations/merge"""

    source_id: int
    target_id: int


class AssignParentRequest(BaseModel):
    """Used by: PUT /api/occupations/{id}/relationship

    ``parent_type`` stays a plain string so unknown values are reported as
    ``InvalidArgument`` by the graph layer.
    """

    parent_type: str
    parent_id: int


class RelationshipCreate(BaseModel):
    """Used by: POST /api/taxonomy-relationships"""

    source_entity_type: str
    source_entity_id: int
    target_entity_type: str
    target_entity_id: int
    relationship_type: str


class SynonymLinkRequest(BaseModel):
    """Used by: POST /api/occupation-synonyms"""

    occupation_id: int
    synonym_id: int
