"""Relationship graph operations for the occupation taxonomy.

Enforces two invariants over ``taxonomy_relationships``:

- every occupation has at most one parent (one incoming ``contains`` edge)
- no parent/child link may close a cycle

Parent/child links are always written as a mirrored pair through
``ParentLink.edges()``. All functions run inside the caller's transaction and
never commit; wrap them with ``occutax.audit.context.audited_session``.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

import structlog
from sqlalchemy import Integer, and_, delete, func, literal_column, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.config import get_config
from occutax.core.errors import (
    CircularRelationship,
    Conflict,
    ConflictExistingParent,
    IntegrityViolation,
    InvalidArgument,
    InvalidShape,
    NotFound,
    ParentNotFound,
    SelfReference,
    TaxonomyError,
)
from occutax.db.models import (
    OccupationModel,
    OccupationSynonymModel,
    SynonymModel,
    TaxonomyGroupModel,
    TaxonomyRelationshipModel,
)
from occutax.models import (
    AssignParentResult,
    ChildOccupation,
    EntityRef,
    EntityType,
    OccupationDetails,
    OccupationOut,
    ParentInfo,
    ParentLink,
    RelationshipKind,
    TreeNode,
)

logger = structlog.get_logger(__name__)

Rel = TaxonomyRelationshipModel

CONTAINS = RelationshipKind.CONTAINS.value

# Endpoint/kind combinations that can never be valid
_INVALID_SHAPES = {
    (EntityType.OCCUPATION, EntityType.GROUP, RelationshipKind.CONTAINS),
    (EntityType.GROUP, EntityType.OCCUPATION, RelationshipKind.CONTAINED_BY),
}


def _rejected(error: TaxonomyError, **context) -> TaxonomyError:
    logger.info("relationship_rejected", code=error.code, reason=error.message, **context)
    return error


def _depth_limit(max_depth: int | None) -> int:
    return max_depth if max_depth is not None else get_config().graph.max_depth


def parse_entity_type(value: str | EntityType) -> EntityType:
    try:
        return EntityType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in EntityType)
        raise InvalidArgument(f"Invalid entity type '{value}'. Expected one of: {allowed}") from None


# ---------------------------------------------------------------------------
# Entity lookups
# ---------------------------------------------------------------------------


def _model_for(entity_type: EntityType):
    return OccupationModel if entity_type is EntityType.OCCUPATION else TaxonomyGroupModel


async def _load_entity(session: AsyncSession, ref: EntityRef):
    return await session.get(_model_for(ref.type), ref.id)


async def _lock_occupation(session: AsyncSession, occupation_id: int) -> OccupationModel | None:
    """Load the occupation row with ``FOR UPDATE`` (ignored on SQLite)."""
    stmt = (
        select(OccupationModel)
        .where(OccupationModel.id == occupation_id)
        .with_for_update()
    )
    return (await session.execute(stmt)).scalar_one_or_none()


def _parent_info(ref: EntityRef, row) -> ParentInfo:
    return ParentInfo(
        id=ref.id,
        type=ref.type,
        name=(row.preferred_label_en if row is not None else None) or "Untitled",
        code=row.esco_code if row is not None else None,
    )


async def find_parent_edge(session: AsyncSession, child: EntityRef) -> Rel | None:
    """The ``contains`` edge targeting ``child``, if any."""
    stmt = (
        select(Rel)
        .where(
            Rel.relationship_type == CONTAINS,
            Rel.target_entity_type == child.type.value,
            Rel.target_entity_id == child.id,
        )
        .order_by(Rel.relationship_id)
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_parent(session: AsyncSession, occupation_id: int) -> ParentInfo | None:
    edge = await find_parent_edge(session, EntityRef.occupation(occupation_id))
    if edge is None:
        return None
    parent_ref = EntityRef(type=edge.source_entity_type, id=edge.source_entity_id)
    return _parent_info(parent_ref, await _load_entity(session, parent_ref))


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


async def _closure(
    session: AsyncSession, start: EntityRef, upward: bool, max_depth: int | None
) -> list[EntityRef]:
    """Transitive closure over ``contains`` edges, nearest first.

    ``UNION`` drops revisits at equal depth; the depth column bounds the walk
    when stored data already contains a cycle.
    """
    limit = _depth_limit(max_depth)

    if upward:
        from_type, from_id = Rel.target_entity_type, Rel.target_entity_id
        to_type, to_id = Rel.source_entity_type, Rel.source_entity_id
    else:
        from_type, from_id = Rel.source_entity_type, Rel.source_entity_id
        to_type, to_id = Rel.target_entity_type, Rel.target_entity_id

    seed = select(
        to_type.label("entity_type"),
        to_id.label("entity_id"),
        literal_column("1", Integer).label("depth"),
    ).where(
        Rel.relationship_type == CONTAINS,
        from_type == start.type.value,
        from_id == start.id,
    )
    closure = seed.cte(name="ancestors" if upward else "descendants", recursive=True)

    step = (
        select(to_type, to_id, closure.c.depth + literal_column("1", Integer))
        .select_from(Rel)
        .join(
            closure,
            and_(from_type == closure.c.entity_type, from_id == closure.c.entity_id),
        )
        .where(Rel.relationship_type == CONTAINS, closure.c.depth <= limit)
    )
    closure = closure.union(step)

    stmt = (
        select(
            closure.c.entity_type,
            closure.c.entity_id,
            func.min(closure.c.depth).label("depth"),
            func.max(closure.c.depth).label("deepest"),
        )
        .group_by(closure.c.entity_type, closure.c.entity_id)
        .order_by(func.min(closure.c.depth), closure.c.entity_type, closure.c.entity_id)
    )
    rows = (await session.execute(stmt)).all()

    if any(row.deepest > limit for row in rows):
        logger.error("traversal_depth_exceeded", start=str(start), upward=upward, max_depth=limit)
        raise IntegrityViolation(
            f"Hierarchy around {start} is deeper than {limit} levels or contains a cycle"
        )

    return [EntityRef(type=row.entity_type, id=row.entity_id) for row in rows]


async def ancestors(
    session: AsyncSession, ref: EntityRef, max_depth: int | None = None
) -> list[EntityRef]:
    """All ancestors of ``ref``, nearest parent first."""
    return await _closure(session, ref, upward=True, max_depth=max_depth)


async def descendants(
    session: AsyncSession, ref: EntityRef, max_depth: int | None = None
) -> list[EntityRef]:
    """All descendants of ``ref``, direct children first."""
    return await _closure(session, ref, upward=False, max_depth=max_depth)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


async def _insert_link(session: AsyncSession, link: ParentLink) -> list[Rel]:
    rows = [
        Rel(
            source_entity_type=edge.source.type.value,
            source_entity_id=edge.source.id,
            target_entity_type=edge.target.type.value,
            target_entity_id=edge.target.id,
            relationship_type=edge.kind.value,
        )
        for edge in link.edges()
    ]
    session.add_all(rows)
    await session.flush()
    return rows


async def _check_not_ancestor(
    session: AsyncSession, child: EntityRef, parent: EntityRef, max_depth: int | None
) -> None:
    if child in await ancestors(session, parent, max_depth):
        raise _rejected(
            CircularRelationship(
                f"Cannot make {parent} the parent of {child}: "
                f"{child} is already an ancestor of {parent}"
            ),
            child=str(child),
            parent=str(parent),
        )


async def assign_parent(
    session: AsyncSession,
    child_id: int,
    parent_type: str | EntityType,
    parent_id: int,
    *,
    max_depth: int | None = None,
) -> AssignParentResult:
    """Attach occupation ``child_id`` under a group or occupation.

    Checks run in a fixed order, each with its own error: parent type,
    existing parent (identical parent is an idempotent success), self
    reference, cycle, parent existence.

    Raises:
        InvalidArgument, NotFound (child), ConflictExistingParent, SelfReference,
        CircularRelationship, ParentNotFound
    """
    try:
        parent_kind = parse_entity_type(parent_type)
    except InvalidArgument as exc:
        raise _rejected(exc, child_id=child_id) from None

    child = EntityRef.occupation(child_id)
    parent = EntityRef(type=parent_kind, id=parent_id)

    # Serialize concurrent assignments for the same child
    if await _lock_occupation(session, child_id) is None:
        raise _rejected(NotFound(f"Occupation {child_id} does not exist"), child_id=child_id)

    existing = await find_parent_edge(session, child)
    if existing is not None:
        current = EntityRef(type=existing.source_entity_type, id=existing.source_entity_id)
        current_info = _parent_info(current, await _load_entity(session, current))
        if current == parent:
            logger.info("parent_already_assigned", child_id=child_id, parent=str(parent))
            return AssignParentResult(
                created=False,
                parent=current_info,
                child_id=child_id,
                message=f"Occupation {child_id} is already a child of {current} '{current_info.name}'",
            )
        raise _rejected(
            ConflictExistingParent(
                f"Occupation {child_id} already has a parent: {current.type.value} "
                f"'{current_info.name}' (id {current.id}). Remove it before assigning a new parent."
            ),
            child_id=child_id,
            requested_parent=str(parent),
            current_parent=str(current),
        )

    if parent_kind is EntityType.OCCUPATION:
        if parent_id == child_id:
            raise _rejected(
                SelfReference(f"Occupation {child_id} cannot be its own parent"),
                child_id=child_id,
            )
        await _check_not_ancestor(session, child, parent, max_depth)

    parent_row = await _load_entity(session, parent)
    if parent_row is None:
        raise _rejected(
            ParentNotFound(f"Parent {parent.type.value} {parent_id} does not exist"),
            child_id=child_id,
            parent=str(parent),
        )

    await _insert_link(session, ParentLink(parent=parent, child=child))
    info = _parent_info(parent, parent_row)

    logger.info("parent_assigned", child_id=child_id, parent=str(parent))
    return AssignParentResult(
        created=True,
        parent=info,
        child_id=child_id,
        message=f"Occupation {child_id} assigned to {parent} '{info.name}'",
    )


async def remove_parent(session: AsyncSession, child_id: int) -> ParentInfo | None:
    """Delete the child's parent link (both rows). Returns the former parent."""
    child = EntityRef.occupation(child_id)
    if await _lock_occupation(session, child_id) is None:
        raise NotFound(f"Occupation {child_id} does not exist")

    edge = await find_parent_edge(session, child)
    if edge is None:
        return None

    parent = EntityRef(type=edge.source_entity_type, id=edge.source_entity_id)
    info = _parent_info(parent, await _load_entity(session, parent))

    await _delete_link(session, ParentLink(parent=parent, child=child))
    logger.info("parent_removed", child_id=child_id, parent=str(parent))
    return info


async def reassign_parent(
    session: AsyncSession,
    child_id: int,
    parent_type: str | EntityType,
    parent_id: int,
    *,
    max_depth: int | None = None,
) -> AssignParentResult:
    """Move ``child_id`` under a new parent in one transaction.

    Every ``assign_parent`` check runs against the graph without the old
    link; on failure the caller's rollback restores it.
    """
    parent_kind = parse_entity_type(parent_type)
    current = await get_parent(session, child_id)
    if current is not None and current.type is parent_kind and current.id == parent_id:
        return await assign_parent(session, child_id, parent_kind, parent_id, max_depth=max_depth)

    await remove_parent(session, child_id)
    return await assign_parent(session, child_id, parent_kind, parent_id, max_depth=max_depth)


async def create_relationship(
    session: AsyncSession,
    source: EntityRef,
    target: EntityRef,
    kind: str | RelationshipKind,
    *,
    max_depth: int | None = None,
) -> Rel:
    """Create an edge (and its mirror) between any two nodes.

    Unlike ``assign_parent`` an existing parent is always a conflict, even
    when it is the requested one.

    Returns:
        The stored row matching the requested direction.
    """
    try:
        kind = RelationshipKind(kind)
    except ValueError:
        raise _rejected(
            InvalidArgument(f"Invalid relationship type '{kind}'"), source=str(source)
        ) from None

    if (source.type, target.type, kind) in _INVALID_SHAPES:
        if kind is RelationshipKind.CONTAINS:
            reason = "occupations cannot contain groups"
        else:
            reason = "groups cannot be contained by occupations"
        raise _rejected(
            InvalidShape(f"Invalid relationship {source} {kind.value} {target}: {reason}"),
            source=str(source),
            target=str(target),
        )

    if kind is RelationshipKind.CONTAINS:
        link = ParentLink(parent=source, child=target)
    else:
        link = ParentLink(parent=target, child=source)

    if link.parent == link.child:
        raise _rejected(
            SelfReference(f"{link.child} cannot be its own parent"), child=str(link.child)
        )

    if link.child.type is EntityType.OCCUPATION:
        await _lock_occupation(session, link.child.id)
        existing = await find_parent_edge(session, link.child)
        if existing is not None:
            current = EntityRef(type=existing.source_entity_type, id=existing.source_entity_id)
            info = _parent_info(current, await _load_entity(session, current))
            raise _rejected(
                ConflictExistingParent(
                    f"Occupation {link.child.id} already has a parent: "
                    f"{current.type.value} '{info.name}' (id {current.id})"
                ),
                child=str(link.child),
                current_parent=str(current),
            )
    elif await _link_exists(session, link):
        raise _rejected(
            Conflict(f"Relationship {link.parent} contains {link.child} already exists"),
            child=str(link.child),
        )

    if await _load_entity(session, link.child) is None:
        raise _rejected(
            NotFound(f"{link.child.type.value.capitalize()} {link.child.id} does not exist"),
            child=str(link.child),
        )
    if await _load_entity(session, link.parent) is None:
        raise _rejected(
            ParentNotFound(f"Parent {link.parent.type.value} {link.parent.id} does not exist"),
            parent=str(link.parent),
        )

    await _check_not_ancestor(session, link.child, link.parent, max_depth)

    forward, mirror = await _insert_link(session, link)
    logger.info("relationship_created", parent=str(link.parent), child=str(link.child))
    return forward if kind is RelationshipKind.CONTAINS else mirror


async def _link_exists(session: AsyncSession, link: ParentLink) -> bool:
    forward, _ = link.edges()
    stmt = select(Rel.relationship_id).where(
        Rel.source_entity_type == forward.source.type.value,
        Rel.source_entity_id == forward.source.id,
        Rel.target_entity_type == forward.target.type.value,
        Rel.target_entity_id == forward.target.id,
        Rel.relationship_type == forward.kind.value,
    )
    return (await session.execute(stmt.limit(1))).first() is not None


async def _delete_link(session: AsyncSession, link: ParentLink) -> int:
    conditions = [
        and_(
            Rel.source_entity_type == edge.source.type.value,
            Rel.source_entity_id == edge.source.id,
            Rel.target_entity_type == edge.target.type.value,
            Rel.target_entity_id == edge.target.id,
            Rel.relationship_type == edge.kind.value,
        )
        for edge in link.edges()
    ]
    result = await session.execute(delete(Rel).where(or_(*conditions)))
    return result.rowcount


async def delete_relationship(session: AsyncSession, relationship_id: int) -> int:
    """Delete one edge row together with its mirror. Returns rows removed."""
    row = await session.get(Rel, relationship_id)
    if row is None:
        raise NotFound(f"Relationship {relationship_id} does not exist")

    source = EntityRef(type=row.source_entity_type, id=row.source_entity_id)
    target = EntityRef(type=row.target_entity_type, id=row.target_entity_id)
    if row.relationship_type == CONTAINS:
        link = ParentLink(parent=source, child=target)
    else:
        link = ParentLink(parent=target, child=source)

    removed = await _delete_link(session, link)
    logger.info("relationship_deleted", relationship_id=relationship_id, rows=removed)
    return removed


async def delete_entity_edges(session: AsyncSession, ref: EntityRef) -> int:
    """Remove every edge row where ``ref`` is either endpoint."""
    result = await session.execute(
        delete(Rel).where(
            or_(
                and_(Rel.source_entity_type == ref.type.value, Rel.source_entity_id == ref.id),
                and_(Rel.target_entity_type == ref.type.value, Rel.target_entity_id == ref.id),
            )
        )
    )
    return result.rowcount


async def list_relationships(session: AsyncSession, ref: EntityRef | None = None) -> list[Rel]:
    stmt = select(Rel).order_by(Rel.relationship_id)
    if ref is not None:
        stmt = stmt.where(
            or_(
                and_(Rel.source_entity_type == ref.type.value, Rel.source_entity_id == ref.id),
                and_(Rel.target_entity_type == ref.type.value, Rel.target_entity_id == ref.id),
            )
        )
    return list((await session.execute(stmt)).scalars().all())


# ---------------------------------------------------------------------------
# Tree queries
# ---------------------------------------------------------------------------


def _live_target_conditions():
    return or_(OccupationModel.id.isnot(None), TaxonomyGroupModel.id.isnot(None))


def _live_target_joins(stmt):
    return (
        stmt.select_from(Rel)
        .outerjoin(
            OccupationModel,
            and_(
                Rel.target_entity_type == EntityType.OCCUPATION.value,
                Rel.target_entity_id == OccupationModel.id,
            ),
        )
        .outerjoin(
            TaxonomyGroupModel,
            and_(
                Rel.target_entity_type == EntityType.GROUP.value,
                Rel.target_entity_id == TaxonomyGroupModel.id,
            ),
        )
    )


async def _child_counts(
    session: AsyncSession, parents: Iterable[EntityRef]
) -> dict[tuple[str, int], int]:
    ids_by_type: dict[str, list[int]] = defaultdict(list)
    for ref in parents:
        ids_by_type[ref.type.value].append(ref.id)
    if not ids_by_type:
        return {}

    source_filter = or_(
        *(
            and_(Rel.source_entity_type == entity_type, Rel.source_entity_id.in_(ids))
            for entity_type, ids in ids_by_type.items()
        )
    )
    stmt = _live_target_joins(
        select(Rel.source_entity_type, Rel.source_entity_id, func.count(Rel.relationship_id))
    ).where(
        Rel.relationship_type == CONTAINS,
        source_filter,
        _live_target_conditions(),
    ).group_by(Rel.source_entity_type, Rel.source_entity_id)

    return {(row[0], row[1]): row[2] for row in await session.execute(stmt)}


def _tree_nodes(
    rows: list[tuple[EntityRef, str]], counts: dict[tuple[str, int], int]
) -> list[TreeNode]:
    nodes = []
    for ref, name in rows:
        count = counts.get((ref.type.value, ref.id), 0)
        nodes.append(
            TreeNode(
                id=ref.id,
                name=name or "Untitled",
                type=ref.type,
                has_children=count > 0,
                child_count=count,
            )
        )
    return nodes


async def get_children(
    session: AsyncSession, entity_type: str | EntityType, entity_id: int
) -> list[TreeNode]:
    """Direct children of a node, ordered by label.

    Edges whose target row no longer exists are skipped.
    """
    parent = EntityRef(type=parse_entity_type(entity_type), id=entity_id)

    stmt = _live_target_joins(
        select(
            Rel.target_entity_type,
            Rel.target_entity_id,
            OccupationModel.preferred_label_en,
            TaxonomyGroupModel.preferred_label_en,
        )
    ).where(
        Rel.relationship_type == CONTAINS,
        Rel.source_entity_type == parent.type.value,
        Rel.source_entity_id == parent.id,
        _live_target_conditions(),
    )

    rows = []
    for target_type, target_id, occupation_label, group_label in await session.execute(stmt):
        ref = EntityRef(type=target_type, id=target_id)
        label = occupation_label if ref.type is EntityType.OCCUPATION else group_label
        rows.append((ref, label))
    rows.sort(key=lambda item: ((item[1] or "").lower(), item[0].type.value, item[0].id))

    counts = await _child_counts(session, [ref for ref, _ in rows])
    return _tree_nodes(rows, counts)


async def get_roots(session: AsyncSession) -> list[TreeNode]:
    """Groups that are not the target of any ``contains`` edge, ordered by label."""
    has_parent = select(Rel.target_entity_id).where(
        Rel.relationship_type == CONTAINS,
        Rel.target_entity_type == EntityType.GROUP.value,
    )
    stmt = (
        select(TaxonomyGroupModel.id, TaxonomyGroupModel.preferred_label_en)
        .where(TaxonomyGroupModel.id.not_in(has_parent))
        .order_by(TaxonomyGroupModel.preferred_label_en, TaxonomyGroupModel.id)
    )
    rows = [
        (EntityRef.group(group_id), label) for group_id, label in await session.execute(stmt)
    ]
    counts = await _child_counts(session, [ref for ref, _ in rows])
    return _tree_nodes(rows, counts)


def _unlinked_filter():
    has_parent = select(Rel.target_entity_id).where(
        Rel.relationship_type == CONTAINS,
        Rel.target_entity_type == EntityType.OCCUPATION.value,
    )
    return OccupationModel.id.not_in(has_parent)


async def unlinked_occupations(
    session: AsyncSession, limit: int | None = None
) -> list[OccupationModel]:
    """Occupations without a parent, ordered by label."""
    stmt = (
        select(OccupationModel)
        .where(_unlinked_filter())
        .order_by(OccupationModel.preferred_label_en, OccupationModel.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def count_unlinked_occupations(session: AsyncSession) -> int:
    stmt = select(func.count(OccupationModel.id)).where(_unlinked_filter())
    return (await session.execute(stmt)).scalar_one()


async def get_occupation_details(session: AsyncSession, occupation_id: int) -> OccupationDetails:
    """Occupation with its parent and its occupation children (with synonym titles)."""
    occupation = await session.get(OccupationModel, occupation_id)
    if occupation is None:
        raise NotFound(f"Occupation {occupation_id} does not exist")

    parent = await get_parent(session, occupation_id)

    child_rows = (
        await session.execute(
            select(OccupationModel)
            .join(
                Rel,
                and_(
                    Rel.target_entity_type == EntityType.OCCUPATION.value,
                    Rel.target_entity_id == OccupationModel.id,
                ),
            )
            .where(
                Rel.relationship_type == CONTAINS,
                Rel.source_entity_type == EntityType.OCCUPATION.value,
                Rel.source_entity_id == occupation_id,
            )
            .order_by(OccupationModel.preferred_label_en, OccupationModel.id)
        )
    ).scalars().all()

    synonyms_by_child: dict[int, list[str]] = defaultdict(list)
    if child_rows:
        synonym_rows = await session.execute(
            select(OccupationSynonymModel.occupation_id, SynonymModel.title)
            .join(SynonymModel, SynonymModel.id == OccupationSynonymModel.synonym_id)
            .where(OccupationSynonymModel.occupation_id.in_([c.id for c in child_rows]))
            .order_by(SynonymModel.title)
        )
        for child_id, title in synonym_rows:
            if title not in synonyms_by_child[child_id]:
                synonyms_by_child[child_id].append(title)

    return OccupationDetails(
        occupation=OccupationOut.model_validate(occupation),
        parent=parent,
        children=[
            ChildOccupation(
                id=child.id,
                preferred_label_en=child.preferred_label_en or "Untitled",
                preferred_label_ar=child.preferred_label_ar,
                esco_code=child.esco_code,
                synonyms=synonyms_by_child.get(child.id, []),
            )
            for child in child_rows
        ],
    )
