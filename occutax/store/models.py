"""Input payloads accepted by the entity store."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from occutax.models import CareerLevel, EntityType


def _strip_optional(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


class SourceCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Source name must not be empty")
        return v


class SourceUpdate(BaseModel):
    name: str | None = None
    description: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Source name must not be empty")
        return v.strip() if v is not None else None


class SynonymCreate(BaseModel):
    title: str
    title_orig: str | None = None
    language: str = Field(default="en", min_length=2, max_length=2)
    source_id: int | None = None


class SynonymUpdate(BaseModel):
    """Partial update; sending ``source_id`` (even null) replaces the source mapping."""

    title: str | None = None
    title_orig: str | None = None
    language: str | None = Field(default=None, min_length=2, max_length=2)
    source_id: int | None = None


class InlineSynonym(BaseModel):
    """Synonym attached while creating or editing an occupation."""

    id: int | None = None
    title: str | None = None
    language: str = "en"
    is_new: bool = False


class ParentRelation(BaseModel):
    type: EntityType
    id: int


class OccupationFields(BaseModel):
    esco_code: str | None = None
    uri: str | None = None
    scope_note: str | None = None
    preferred_label_en: str | None = None
    preferred_label_ar: str | None = None
    definition: str | None = None
    description_en: str | None = None
    description_ar: str | None = None
    is_generic_title: bool | None = None
    min_career_level: CareerLevel | None = None
    max_career_level: CareerLevel | None = None

    @field_validator("preferred_label_ar")
    @classmethod
    def blank_arabic_label(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class OccupationCreate(BaseModel):
    occupation: OccupationFields
    synonyms: list[InlineSynonym] = Field(default_factory=list)
    parent_relation: ParentRelation | None = None
    source_id: int | None = None


class OccupationUpdate(OccupationFields):
    """Plain field update; sending ``source_id`` (even null) replaces the source mapping."""

    source_id: int | None = None


class OccupationRelationsUpdate(BaseModel):
    """Full edit: fields, replacement synonym set, parent and source."""

    occupation: OccupationFields = Field(default_factory=OccupationFields)
    synonyms: list[InlineSynonym] = Field(default_factory=list)
    parent_relation: ParentRelation | None = None
    source_id: int | None = None


class GroupCreate(BaseModel):
    esco_code: str | None = None
    preferred_label_en: str
    description_en: str | None = None
    description_ar: str | None = None
    alt_labels: str | None = None


class GroupUpdate(BaseModel):
    esco_code: str | None = None
    preferred_label_en: str | None = None
    description_en: str | None = None
    description_ar: str | None = None
    alt_labels: str | None = None
