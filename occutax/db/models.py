"""SQLAlchemy async database models for the occupation taxonomy.

Maps to the PostgreSQL schema; every audited table has a single-column
primary key so the audit triggers can record a stable ``record_id``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    # Load server-side timestamps right after INSERT/UPDATE (no lazy IO in async code)
    __mapper_args__ = {"eager_defaults": True}


class TaxonomySourceModel(Base):
    """Provenance tag attachable to occupations and synonyms."""

    __tablename__ = "taxonomy_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class SynonymModel(Base):
    """Alternative job title. Titles are globally unique."""

    __tablename__ = "synonyms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    title_orig: Mapped[str | None] = mapped_column(Text)
    language: Mapped[str] = mapped_column(
        String(2), nullable=False, default="en", server_default="en"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("title", name="uq_synonyms_title"),)


class SynonymSourceMappingModel(Base):
    __tablename__ = "synonym_source_mapping"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    synonym_id: Mapped[int] = mapped_column(
        ForeignKey("synonyms.id"), nullable=False, index=True
    )
    source_id: Mapped[int] = mapped_column(
        ForeignKey("taxonomy_sources.id"), nullable=False, index=True
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_method: Mapped[str | None] = mapped_column(Text)
    confidence_score: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("0.00"), nullable=False
    )
    is_moderated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="check_synonym_source_confidence_range",
        ),
    )


class OccupationModel(Base):
    """Occupation node with bilingual labels and a career-level range."""

    __tablename__ = "occupations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    esco_code: Mapped[str | None] = mapped_column(Text, index=True)
    uri: Mapped[str | None] = mapped_column(Text)
    scope_note: Mapped[str | None] = mapped_column(Text)
    preferred_label_en: Mapped[str] = mapped_column(Text, nullable=False)
    preferred_label_ar: Mapped[str | None] = mapped_column(Text)
    definition: Mapped[str | None] = mapped_column(Text)
    description_en: Mapped[str | None] = mapped_column(Text)
    description_ar: Mapped[str | None] = mapped_column(Text)
    is_generic_title: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_career_level: Mapped[int | None] = mapped_column(Integer)
    max_career_level: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "min_career_level IS NULL OR (min_career_level >= 0 AND min_career_level <= 6)",
            name="check_min_career_level_range",
        ),
        CheckConstraint(
            "max_career_level IS NULL OR (max_career_level >= 0 AND max_career_level <= 6)",
            name="check_max_career_level_range",
        ),
        Index("idx_occupations_label_en", "preferred_label_en"),
    )

    def labels(self) -> list[str]:
        """Non-empty preferred labels, English first."""
        return [
            label.strip()
            for label in (self.preferred_label_en, self.preferred_label_ar)
            if label and label.strip()
        ]


class TaxonomyGroupModel(Base):
    """Classification branch (ISCO/ESCO-like group)."""

    __tablename__ = "taxonomy_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    esco_code: Mapped[str | None] = mapped_column(Text, index=True)
    preferred_label_en: Mapped[str] = mapped_column(Text, nullable=False)
    description_en: Mapped[str | None] = mapped_column(Text)
    description_ar: Mapped[str | None] = mapped_column(Text)
    alt_labels: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TaxonomyRelationshipModel(Base):
    """Directed edge row between two taxonomy nodes.

    Parent/child links are stored as a ``contains`` row (parent -> child) plus a
    ``contained_by`` mirror (child -> parent).
    """

    __tablename__ = "taxonomy_relationships"

    relationship_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    source_entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    relationship_type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "source_entity_type IN ('occupation', 'group')",
            name="check_relationship_source_type",
        ),
        CheckConstraint(
            "target_entity_type IN ('occupation', 'group')",
            name="check_relationship_target_type",
        ),
        CheckConstraint(
            "relationship_type IN ('contains', 'contained_by')",
            name="check_relationship_type",
        ),
        UniqueConstraint(
            "source_entity_type",
            "source_entity_id",
            "target_entity_type",
            "target_entity_id",
            "relationship_type",
            name="uq_relationship_edge",
        ),
        # At most one parent per occupation, even under concurrent writers
        Index(
            "uq_relationship_single_parent",
            "target_entity_type",
            "target_entity_id",
            unique=True,
            postgresql_where=text(
                "relationship_type = 'contains' AND target_entity_type = 'occupation'"
            ),
            sqlite_where=text(
                "relationship_type = 'contains' AND target_entity_type = 'occupation'"
            ),
        ),
        Index(
            "idx_relationship_source",
            "source_entity_type",
            "source_entity_id",
            "relationship_type",
        ),
        Index(
            "idx_relationship_target",
            "target_entity_type",
            "target_entity_id",
            "relationship_type",
        ),
    )


class OccupationSynonymModel(Base):
    """Many-to-many link between occupations and synonyms."""

    __tablename__ = "occupation_synonyms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    occupation_id: Mapped[int] = mapped_column(
        ForeignKey("occupations.id"), nullable=False, index=True
    )
    synonym_id: Mapped[int] = mapped_column(
        ForeignKey("synonyms.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("occupation_id", "synonym_id", name="uq_occupation_synonym"),
    )


class SynonymRelationshipModel(Base):
    """Legacy weighted synonym link; kept for audit continuity."""

    __tablename__ = "synonym_relationships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    synonym_id: Mapped[int] = mapped_column(ForeignKey("synonyms.id"), nullable=False)
    occupation_id: Mapped[int] = mapped_column(ForeignKey("occupations.id"), nullable=False)
    relationship_type: Mapped[str | None] = mapped_column(Text, default="synonym")
    confidence: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), default=Decimal("1.00"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class OccupationSourceMappingModel(Base):
    __tablename__ = "occupation_source_mapping"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    occupation_id: Mapped[int] = mapped_column(
        ForeignKey("occupations.id"), nullable=False, index=True
    )
    source_id: Mapped[int] = mapped_column(
        ForeignKey("taxonomy_sources.id"), nullable=False, index=True
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_method: Mapped[str | None] = mapped_column(String(255))
    confidence_score: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("0.00"), nullable=False
    )
    is_moderated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="check_occupation_source_confidence_range",
        ),
    )


class OccupationTaxonomyMappingModel(Base):
    """Flat occupation -> group classification tag (outside the tree)."""

    __tablename__ = "occupation_taxonomy_mapping"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    occupation_id: Mapped[int] = mapped_column(ForeignKey("occupations.id"), nullable=False)
    taxonomy_id: Mapped[int] = mapped_column(ForeignKey("taxonomy_groups.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class AuditLogModel(Base):
    """Append-only change log written exclusively by the audit triggers."""

    __tablename__ = "taxonomy_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(Text, nullable=False)
    record_id: Mapped[str] = mapped_column(Text, nullable=False)
    operation: Mapped[str] = mapped_column(Text, nullable=False)
    old_values: Mapped[str | None] = mapped_column(Text)
    new_values: Mapped[str | None] = mapped_column(Text)
    changed_fields: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[str | None] = mapped_column(Text)
    session_id: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    ip_address: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "operation IN ('INSERT', 'UPDATE', 'DELETE')",
            name="check_audit_operation",
        ),
        Index("idx_audit_record", "table_name", "record_id"),
        Index("idx_audit_timestamp", "timestamp"),
    )


AUDITED_TABLES: tuple[str, ...] = (
    "occupations",
    "synonyms",
    "taxonomy_sources",
    "taxonomy_groups",
    "taxonomy_relationships",
    "synonym_source_mapping",
    "synonym_relationships",
    "occupation_synonyms",
    "occupation_source_mapping",
    "occupation_taxonomy_mapping",
)
