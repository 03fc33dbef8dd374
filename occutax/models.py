"""Occupation taxonomy Pydantic models for type-safe data validation.

Value objects shared by the graph, merge, audit and web layers.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class EntityType(str, Enum):
    """Node kinds that can take part in a parent/child relationship."""

    OCCUPATION = "occupation"
    GROUP = "group"


class RelationshipKind(str, Enum):
    """Direction of a stored edge row."""

    CONTAINS = "contains"  # parent -> child
    CONTAINED_BY = "contained_by"  # child -> parent


class CareerLevel(IntEnum):
    """Career stage enumeration used for an occupation's min/max range."""

    STUDENT_INTERNSHIP = 0
    ENTRY_LEVEL = 1
    MID_CAREER = 2
    MANAGEMENT = 3
    DIRECTOR_HEAD = 4
    SENIOR_EXECUTIVE = 5
    FRESH_GRADUATE = 6


class AuditOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EntityRef(BaseModel):
    """Typed reference to an occupation or a group node."""

    type: EntityType
    id: int

    model_config = {"frozen": True}

    @classmethod
    def occupation(cls, entity_id: int) -> EntityRef:
        return cls(type=EntityType.OCCUPATION, id=entity_id)

    @classmethod
    def group(cls, entity_id: int) -> EntityRef:
        return cls(type=EntityType.GROUP, id=entity_id)

    def __str__(self) -> str:
        return f"{self.type.value}:{self.id}"


class Edge(BaseModel):
    """One stored relationship row, before persistence."""

    source: EntityRef
    target: EntityRef
    kind: RelationshipKind

    model_config = {"frozen": True}


class ParentLink(BaseModel):
    """A parent/child link; persisted as a mirrored pair of edge rows."""

    parent: EntityRef
    child: EntityRef

    model_config = {"frozen": True}

    def edges(self) -> tuple[Edge, Edge]:
        """Return the forward ``contains`` edge and its ``contained_by`` mirror."""
        return (
            Edge(source=self.parent, target=self.child, kind=RelationshipKind.CONTAINS),
            Edge(source=self.child, target=self.parent, kind=RelationshipKind.CONTAINED_BY),
        )


class AuditContext(BaseModel):
    """Actor metadata attached to one unit of work."""

    user_id: str
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @field_validator("session_id", "ip_address", "user_agent", mode="before")
    @classmethod
    def empty_string_to_none(cls, v: Any) -> Any:
        if v == "":
            return None
        return v

    def settings(self) -> dict[str, str | None]:
        """Map to the session setting names read by the audit triggers."""
        return {
            "current_user_id": self.user_id,
            "session_id": self.session_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }


class TreeNode(BaseModel):
    """Row returned by root/children lookups."""

    id: int
    name: str
    type: EntityType
    has_children: bool = Field(serialization_alias="hasChildren")
    child_count: int = Field(serialization_alias="childCount")

    model_config = {"populate_by_name": True}


class ParentInfo(BaseModel):
    id: int
    name: str
    type: EntityType
    code: str | None = None


class AssignParentResult(BaseModel):
    """Outcome of a successful ``assign_parent`` call."""

    created: bool  # False when the identical link already existed
    parent: ParentInfo
    child_id: int
    message: str


class MergeResult(BaseModel):
    source_id: int
    target_id: int
    synonyms_created: list[str] = Field(default_factory=list)
    synonyms_linked: int = 0
    relationships_removed: int = 0


class AuditFilters(BaseModel):
    """Filters accepted by the audit log listing."""

    table_name: str | None = None
    operation: AuditOperation | None = None
    user_id: str | None = None
    record_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    @field_validator("table_name", "user_id", "record_id", mode="before")
    @classmethod
    def empty_string_to_none(cls, v: Any) -> Any:
        if v == "":
            return None
        return v

    @field_validator("operation", mode="before")
    @classmethod
    def blank_operation(cls, v: Any) -> Any:
        if v == "":
            return None
        if isinstance(v, str):
            return v.upper()
        return v


class AuditLogEntry(BaseModel):
    """One audit row with its snapshots decoded."""

    id: int
    table_name: str
    record_id: str
    operation: AuditOperation
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    changed_fields: list[str] | None = None
    user_id: str | None = None
    session_id: str | None = None
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class AuditLogPage(BaseModel):
    data: list[AuditLogEntry]
    page: int
    limit: int
    total: int
    total_pages: int = Field(serialization_alias="totalPages")

    model_config = {"populate_by_name": True}


class CountBucket(BaseModel):
    key: str
    count: int


class AuditStats(BaseModel):
    total: int
    by_table: list[CountBucket] = Field(serialization_alias="byTable")
    by_operation: list[CountBucket] = Field(serialization_alias="byOperation")
    recent_activity: list[CountBucket] = Field(serialization_alias="recentActivity")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Entity read models
# ---------------------------------------------------------------------------


class SourceOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SynonymOut(BaseModel):
    id: int
    title: str
    title_orig: str | None = None
    language: str = "en"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    source: SourceOut | None = None

    model_config = {"from_attributes": True}


class OccupationOut(BaseModel):
    id: int
    esco_code: str | None = None
    uri: str | None = None
    scope_note: str | None = None
    preferred_label_en: str
    preferred_label_ar: str | None = None
    definition: str | None = None
    description_en: str | None = None
    description_ar: str | None = None
    is_generic_title: bool = False
    min_career_level: CareerLevel | None = None
    max_career_level: CareerLevel | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class GroupOut(BaseModel):
    id: int
    esco_code: str | None = None
    preferred_label_en: str
    description_en: str | None = None
    description_ar: str | None = None
    alt_labels: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class RelationshipOut(BaseModel):
    relationship_id: int
    source_entity_type: EntityType
    source_entity_id: int
    target_entity_type: EntityType
    target_entity_id: int
    relationship_type: RelationshipKind
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ChildOccupation(BaseModel):
    id: int
    preferred_label_en: str
    preferred_label_ar: str | None = None
    esco_code: str | None = None
    synonyms: list[str] = Field(default_factory=list)


class OccupationDetails(BaseModel):
    """Occupation with its parent and direct occupation children."""

    occupation: OccupationOut
    parent: ParentInfo | None = None
    children: list[ChildOccupation] = Field(default_factory=list)
