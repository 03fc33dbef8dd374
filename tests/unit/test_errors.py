"""Unit tests for the taxonomy error hierarchy."""

from __future__ import annotations

import pytest

from occutax.core.errors import (
    CircularRelationship,
    Conflict,
    ConflictExistingParent,
    DuplicateOccupationLabel,
    DuplicateSynonymTitle,
    IntegrityViolation,
    InternalError,
    InvalidArgument,
    InvalidShape,
    MergeWouldBreakHierarchy,
    NotFound,
    ParentNotFound,
    SelfReference,
    TaxonomyError,
)


@pytest.mark.parametrize(
    ("error_class", "parent", "status_code"),
    [
        (InvalidShape, InvalidArgument, 400),
        (SelfReference, InvalidArgument, 400),
        (ParentNotFound, NotFound, 404),
        (ConflictExistingParent, Conflict, 409),
        (DuplicateSynonymTitle, Conflict, 409),
        (DuplicateOccupationLabel, Conflict, 409),
        (CircularRelationship, IntegrityViolation, 422),
        (MergeWouldBreakHierarchy, IntegrityViolation, 422),
    ],
)
def test_error_family_and_status(error_class, parent, status_code):
    error = error_class("boom")

    assert isinstance(error, parent)
    assert isinstance(error, TaxonomyError)
    assert error.status_code == status_code


def test_code_is_class_specific():
    assert CircularRelationship("x").code == "CircularRelationship"
    assert ParentNotFound("x").code == "ParentNotFound"
    assert NotFound("x").code == "NotFound"


def test_to_dict_shape():
    error = ConflictExistingParent("Occupation 3 already has a parent")

    assert error.to_dict() == {
        "error": "ConflictExistingParent",
        "message": "Occupation 3 already has a parent",
    }
    assert str(error) == "Occupation 3 already has a parent"


def test_internal_error_has_default_message():
    error = InternalError()

    assert error.code == "Internal"
    assert error.status_code == 500
    assert error.message
