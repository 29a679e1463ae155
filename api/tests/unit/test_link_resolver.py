"""
Tests del LinkResolver: enlazado por external id, conflictos y unlink.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.infrastructure.database.models import ProjectModel, PropertyModel
from app.infrastructure.external.airtable_sync.link_resolver import LinkResolver
from app.infrastructure.external.airtable_sync.table_mappings import get_table_sync_configs
from app.shared.constants.sync_constants import TableKind
from app.shared.exceptions.domain import EntityNotFoundException, ValidationException

MODIFIED = datetime(2025, 3, 1, tzinfo=timezone.utc)


async def _seed(session_factory, projects, properties) -> dict:
    """projects: [external_id]; properties: [(external_id, refs)]. Retorna external_id -> id."""
    async with session_factory() as session:
        rows = [ProjectModel(external_id=e, external_modified_at=MODIFIED, name=e) for e in projects]
        rows += [
            PropertyModel(
                external_id=e,
                external_modified_at=MODIFIED,
                address=f"Calle {e}",
                project_external_refs=refs,
            )
            for e, refs in properties
        ]
        session.add_all(rows)
        await session.commit()
        return {row.external_id: row.id for row in rows}


async def _project_id_of(session_factory, entity_id: int):
    async with session_factory() as session:
        return (await session.get(PropertyModel, entity_id)).project_id


def _resolver(session_factory) -> LinkResolver:
    return LinkResolver(session_factory=session_factory, table_configs=get_table_sync_configs())


@pytest.mark.asyncio
async def test_links_children_using_first_reference(session_factory) -> None:
    ids = await _seed(
        session_factory,
        ["recA", "recB"],
        [("recP1", ["recA", "recB"]), ("recP2", None), ("recP3", [])],
    )

    result = await _resolver(session_factory).link_children_to_parents(
        TableKind.PROPERTIES, TableKind.PROJECTS
    )

    assert result.linked == 1
    assert result.errors == []
    assert await _project_id_of(session_factory, ids["recP1"]) == ids["recA"]
    assert await _project_id_of(session_factory, ids["recP2"]) is None


@pytest.mark.asyncio
async def test_unresolved_parent_is_reported_and_retried_later(session_factory) -> None:
    ids = await _seed(session_factory, [], [("recP1", ["recA"])])
    resolver = _resolver(session_factory)

    first = await resolver.link_children_to_parents(TableKind.PROPERTIES, TableKind.PROJECTS)
    parent_ids = await _seed(session_factory, ["recA"], [])
    second = await resolver.link_children_to_parents(TableKind.PROPERTIES, TableKind.PROJECTS)

    assert [(e.external_id, e.reason) for e in first.errors] == [("recP1", "parent recA not synced yet")]
    assert second.linked == 1
    assert await _project_id_of(session_factory, ids["recP1"]) == parent_ids["recA"]


@pytest.mark.asyncio
async def test_relinking_is_noop(session_factory) -> None:
    await _seed(session_factory, ["recA"], [("recP1", ["recA"])])
    resolver = _resolver(session_factory)

    await resolver.link_children_to_parents(TableKind.PROPERTIES, TableKind.PROJECTS)
    again = await resolver.link_children_to_parents(TableKind.PROPERTIES, TableKind.PROJECTS)

    assert (again.linked, again.errors) == (0, [])


@pytest.mark.asyncio
async def test_conflicting_parent_requires_explicit_unlink(session_factory) -> None:
    ids = await _seed(session_factory, ["recA", "recB"], [("recP1", ["recA"])])
    resolver = _resolver(session_factory)
    await resolver.link_children_to_parents(TableKind.PROPERTIES, TableKind.PROJECTS)

    # en Airtable la propiedad se movió a otro proyecto
    async with session_factory() as session:
        prop = await session.get(PropertyModel, ids["recP1"])
        prop.project_external_refs = ["recB"]
        await session.commit()

    conflict = await resolver.link_children_to_parents(TableKind.PROPERTIES, TableKind.PROJECTS)
    assert conflict.linked == 0
    assert conflict.errors[0].external_id == "recP1"
    assert "unlink" in conflict.errors[0].reason
    assert await _project_id_of(session_factory, ids["recP1"]) == ids["recA"]

    assert await resolver.unlink(TableKind.PROPERTIES, ids["recP1"]) is True
    relinked = await resolver.link_children_to_parents(TableKind.PROPERTIES, TableKind.PROJECTS)
    assert relinked.linked == 1
    assert await _project_id_of(session_factory, ids["recP1"]) == ids["recB"]


@pytest.mark.asyncio
async def test_unlink_edge_cases(session_factory) -> None:
    ids = await _seed(session_factory, [], [("recP1", None)])
    resolver = _resolver(session_factory)

    assert await resolver.unlink(TableKind.PROPERTIES, ids["recP1"]) is False
    with pytest.raises(EntityNotFoundException):
        await resolver.unlink(TableKind.PROPERTIES, 999)
    with pytest.raises(ValidationException):
        await resolver.unlink(TableKind.PROJECTS, 1)
