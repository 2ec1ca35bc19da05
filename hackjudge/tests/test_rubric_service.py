"""
Tests for organizer rubric definition.
"""
from decimal import Decimal

import pytest

from hackjudge.errors import (
    AccessDeniedError,
    BadRequestError,
    ConflictError,
    ErrorCode,
    InvalidCriteriaError,
    NotFoundError,
)
from hackjudge.services.rubric_service import CriterionSpec, define_rubric, get_rubric, rubric_to_dict
from hackjudge.tests.factories import make_event


@pytest.fixture
def specs():
    return [
        CriterionSpec(key="impact", label="Impact", weight=3, description="Who benefits"),
        CriterionSpec(key="demo", label="Demo", weight=1, max_score=Decimal("5")),
    ]


@pytest.mark.asyncio
async def test_define_rubric_keeps_order(db_session, world, specs):
    event = await make_event(db_session, world.organizer, title="Autumn Hack")
    rubric = await define_rubric(db_session, event.id, world.organizer.id, "Autumn", specs)

    data = rubric_to_dict(rubric)
    assert data["name"] == "Autumn"
    assert [c["key"] for c in data["criteria"]] == ["impact", "demo"]
    assert [c["display_order"] for c in data["criteria"]] == [0, 1]

    fetched = await get_rubric(db_session, event.id)
    assert fetched.id == rubric.id


@pytest.mark.asyncio
async def test_rubric_defined_once(db_session, world, specs):
    with pytest.raises(ConflictError) as exc:
        await define_rubric(db_session, world.event.id, world.organizer.id, "Again", specs)
    assert exc.value.code == ErrorCode.RUBRIC_EXISTS


@pytest.mark.asyncio
async def test_only_organizer_defines(db_session, world, specs):
    event = await make_event(db_session, world.organizer, title="Autumn Hack")
    with pytest.raises(AccessDeniedError):
        await define_rubric(db_session, event.id, world.judge_a.id, "Autumn", specs)


@pytest.mark.asyncio
async def test_duplicate_keys(db_session, world):
    event = await make_event(db_session, world.organizer, title="Autumn Hack")
    criteria = [CriterionSpec(key="impact", label="Impact"), CriterionSpec(key="impact", label="Impact again")]

    with pytest.raises(InvalidCriteriaError) as exc:
        await define_rubric(db_session, event.id, world.organizer.id, "Autumn", criteria)
    assert exc.value.invalid_keys == ["impact"]


@pytest.mark.asyncio
@pytest.mark.parametrize("criteria", [
    [],
    [CriterionSpec(key="impact", label="Impact", weight=-1)],
    [CriterionSpec(key="impact", label="Impact", max_score=Decimal("0"))],
    [CriterionSpec(key="  ", label="Blank")],
])
async def test_invalid_criteria_rejected(db_session, world, criteria):
    event = await make_event(db_session, world.organizer, title="Autumn Hack")
    with pytest.raises(BadRequestError):
        await define_rubric(db_session, event.id, world.organizer.id, "Autumn", criteria)


@pytest.mark.asyncio
async def test_missing_rubric(db_session, world):
    event = await make_event(db_session, world.organizer, title="Autumn Hack")
    with pytest.raises(NotFoundError) as exc:
        await get_rubric(db_session, event.id)
    assert exc.value.code == ErrorCode.RUBRIC_NOT_FOUND
