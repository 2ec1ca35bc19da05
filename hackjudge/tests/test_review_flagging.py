"""
Tests for the Review Integrity Analyzer

MAD z-score outliers (Check A), reviewer re-verification (Check B),
stale-flag clearing and per-check isolation.
"""
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import delete, select

from hackjudge.orm.event import JudgeAssignment
from hackjudge.orm.review import FlagReason, Review, ReviewFlag, ReviewerRole
from hackjudge.services import review_flagging_service as flagging
from hackjudge.services.review_flagging_service import (
    calculate_mad_zscores,
    find_outliers,
    flag_invalid_user_reviews,
    flag_outlier_reviews,
    get_flagged_reviews_with_details,
    run_flagging_analysis,
)
from hackjudge.services.verification_service import DatabaseVerifier
from hackjudge.tests.factories import add_review, assign_judge, make_user


def ratings_to_reviews(ratings):
    return [SimpleNamespace(id=i, rating=r) for i, r in enumerate(ratings, start=1)]


async def reviewers(db, event, count, prefix="Rev"):
    """Judges assigned to the event, so they pass verification."""
    users = []
    for i in range(count):
        user = await make_user(db, f"{prefix}{i}")
        await assign_judge(db, event, user)
        users.append(user)
    return users


async def flags_of(db, event_id, reason=None):
    query = (
        select(ReviewFlag)
        .join(Review, Review.id == ReviewFlag.review_id)
        .where(Review.event_id == event_id)
        .order_by(ReviewFlag.id)
    )
    if reason is not None:
        query = query.where(ReviewFlag.reason == reason)
    return list((await db.execute(query)).scalars().all())


# =============================================================================
# Pure statistics
# =============================================================================

class TestMadZscores:

    def test_literal_example_is_not_an_outlier(self):
        # median 3, MAD 1: z(1) = -2 / 1.4826
        result = calculate_mad_zscores([4, 3, 4, 3, 4, 3, 1])
        assert result.median == 3
        assert result.mad == 1
        assert result.zscores[-1] == pytest.approx(-1.349, abs=1e-3)
        assert find_outliers(ratings_to_reviews([4, 3, 4, 3, 4, 3, 1])) == []

    def test_clustered_ratings_flag_only_the_outlier(self):
        # median 4, MAD 0.5: z(1) = -3 / 0.7413
        result = calculate_mad_zscores([4, 4, 4, 3, 5, 1])
        assert result.median == 4
        assert result.mad == 0.5
        assert result.zscores[-1] == pytest.approx(-4.047, abs=1e-3)
        assert result.zscores[3] == pytest.approx(-1.349, abs=1e-3)
        assert result.zscores[4] == pytest.approx(1.349, abs=1e-3)

        outliers = find_outliers(ratings_to_reviews([4, 4, 4, 3, 5, 1]))
        assert [o.review.id for o in outliers] == [6]

    def test_even_count_median(self):
        result = calculate_mad_zscores([3, 3, 3, 4, 4, 4, 1, 5])
        assert result.median == 3.5
        assert result.mad == 0.5
        assert [o.review.rating for o in find_outliers(ratings_to_reviews([3, 3, 3, 4, 4, 4, 1, 5]))] == [1]

    def test_zero_mad_means_no_outliers(self):
        result = calculate_mad_zscores([4, 4, 4, 4, 1])
        assert result.mad == 0
        assert result.zscores == [0.0] * 5
        assert find_outliers(ratings_to_reviews([4, 4, 4, 4, 1])) == []

    def test_too_few_reviews(self):
        assert find_outliers(ratings_to_reviews([5, 1])) == []

    def test_empty(self):
        assert calculate_mad_zscores([]).zscores == []

    def test_zscores_keep_input_order(self):
        result = calculate_mad_zscores([1, 2, 3])
        assert result.zscores[0] < result.zscores[1] < result.zscores[2]


# =============================================================================
# Check A
# =============================================================================

@pytest.mark.asyncio
async def test_outlier_flag_written_with_metadata(db_session, world):
    users = await reviewers(db_session, world.event, 6)
    reviews = [await add_review(db_session, world.event, u, r) for u, r in zip(users, [4, 4, 4, 3, 5, 1])]

    result = await flag_outlier_reviews(db_session, world.event.id)

    assert result.flagged == 1
    flags = await flags_of(db_session, world.event.id)
    assert len(flags) == 1
    flag = flags[0]
    assert flag.review_id == reviews[-1].id
    assert flag.reason == FlagReason.OUTLIER_RATING
    assert flag.score == pytest.approx(4.047, abs=1e-3)
    assert flag.detection_method == "MAD_zscore"
    assert flag.metadata_json["mad_zscore"] == pytest.approx(-4.047, abs=1e-3)
    assert flag.metadata_json["event_median"] == 4
    assert flag.metadata_json["mad"] == 0.5
    assert flag.metadata_json["user_role"] == "judge"
    assert flag.metadata_json["detection_method"] == "MAD_zscore"


@pytest.mark.asyncio
async def test_rerun_refreshes_instead_of_duplicating(db_session, world):
    users = await reviewers(db_session, world.event, 6)
    for u, r in zip(users, [4, 4, 4, 3, 5, 1]):
        await add_review(db_session, world.event, u, r)

    await flag_outlier_reviews(db_session, world.event.id)
    await flag_outlier_reviews(db_session, world.event.id)

    assert len(await flags_of(db_session, world.event.id)) == 1


@pytest.mark.asyncio
async def test_stale_outlier_flag_is_cleared(db_session, world):
    users = await reviewers(db_session, world.event, 6)
    reviews = [await add_review(db_session, world.event, u, r) for u, r in zip(users, [4, 4, 4, 3, 5, 1])]
    await flag_outlier_reviews(db_session, world.event.id)

    reviews[-1].rating = 4
    await db_session.commit()

    result = await flag_outlier_reviews(db_session, world.event.id)
    assert result.flagged == 0
    assert result.cleared == 1
    assert await flags_of(db_session, world.event.id) == []


@pytest.mark.asyncio
async def test_outlier_flags_cleared_below_minimum(db_session, world):
    users = await reviewers(db_session, world.event, 2)
    review = await add_review(db_session, world.event, users[0], 1)
    await add_review(db_session, world.event, users[1], 5)
    db_session.add(ReviewFlag(review_id=review.id, reason=FlagReason.OUTLIER_RATING, metadata_json={}))
    await db_session.commit()

    result = await flag_outlier_reviews(db_session, world.event.id)
    assert result.cleared == 1
    assert await flags_of(db_session, world.event.id) == []


@pytest.mark.asyncio
async def test_suspicious_pattern_flags_are_left_alone(db_session, world):
    users = await reviewers(db_session, world.event, 3)
    reviews = [await add_review(db_session, world.event, u, 4) for u in users]
    db_session.add(ReviewFlag(review_id=reviews[0].id, reason=FlagReason.SUSPICIOUS_PATTERN, metadata_json={"note": "manual"}))
    await db_session.commit()

    report = await run_flagging_analysis(db_session, world.event.id, DatabaseVerifier(db_session))

    assert report.flags_cleared == 0
    remaining = await flags_of(db_session, world.event.id)
    assert [f.reason for f in remaining] == [FlagReason.SUSPICIOUS_PATTERN]


# =============================================================================
# Check B
# =============================================================================

@pytest.mark.asyncio
async def test_unverified_author_flagged_then_cleared(db_session, world):
    review = await add_review(db_session, world.event, world.outsider, 5, role=ReviewerRole.participant)
    await add_review(db_session, world.event, world.judge_a, 4)

    result = await flag_invalid_user_reviews(db_session, world.event.id, DatabaseVerifier(db_session))

    assert result.flagged == 1
    flags = await flags_of(db_session, world.event.id, FlagReason.INVALID_USER)
    assert [f.review_id for f in flags] == [review.id]
    assert flags[0].score is None
    assert flags[0].metadata_json == {"user_role": "participant", "detection_method": "user_verification"}

    await assign_judge(db_session, world.event, world.outsider)
    result = await flag_invalid_user_reviews(db_session, world.event.id, DatabaseVerifier(db_session))

    assert result.flagged == 0
    assert result.cleared == 1
    assert await flags_of(db_session, world.event.id, FlagReason.INVALID_USER) == []


@pytest.mark.asyncio
async def test_revoked_judge_at_median_is_invalid_not_outlier(db_session, world):
    users = await reviewers(db_session, world.event, 4)
    reviews = [
        await add_review(db_session, world.event, user, rating)
        for user, rating in zip(users, [3, 3, 4, 2])
    ]
    event_id = world.event.id
    median_review_id = reviews[0].id

    report = await run_flagging_analysis(db_session, event_id, DatabaseVerifier(db_session))
    assert report.ok
    assert await flags_of(db_session, event_id) == []

    await db_session.execute(
        delete(JudgeAssignment).where(
            JudgeAssignment.event_id == event_id,
            JudgeAssignment.judge_id == users[0].id,
        )
    )
    await db_session.commit()

    report = await run_flagging_analysis(db_session, event_id, DatabaseVerifier(db_session))

    assert report.ok
    assert report.outliers_flagged == 0
    assert report.invalid_users_flagged == 1
    flags = await flags_of(db_session, event_id)
    assert [(f.review_id, f.reason) for f in flags] == [(median_review_id, FlagReason.INVALID_USER)]


@pytest.mark.asyncio
async def test_team_member_without_submission_is_invalid(db_session, world):
    await add_review(db_session, world.event, world.carol, 3, role=ReviewerRole.participant)
    await add_review(db_session, world.event, world.alice, 3, role=ReviewerRole.participant)

    result = await flag_invalid_user_reviews(db_session, world.event.id, DatabaseVerifier(db_session))
    assert result.flagged == 1


# =============================================================================
# Orchestration
# =============================================================================

class ExplodingVerifier:
    async def is_verified(self, event_id, user_id):
        raise RuntimeError("identity provider down")

    async def check_attendance_code(self, event_id, code):
        return False


@pytest.mark.asyncio
async def test_failing_verification_check_keeps_outlier_results(db_session, world):
    event_id = world.event.id
    users = await reviewers(db_session, world.event, 6)
    for u, r in zip(users, [4, 4, 4, 3, 5, 1]):
        await add_review(db_session, world.event, u, r)

    report = await run_flagging_analysis(db_session, event_id, ExplodingVerifier())

    assert report.outliers_flagged == 1
    assert report.invalid_users_flagged == 0
    assert len(report.errors) == 1
    assert report.errors[0].startswith("invalid_user")
    assert report.ok is False
    assert len(await flags_of(db_session, event_id, FlagReason.OUTLIER_RATING)) == 1


@pytest.mark.asyncio
async def test_failing_outlier_check_still_runs_verification(db_session, world, monkeypatch):
    event_id = world.event.id
    await add_review(db_session, world.event, world.outsider, 5, role=ReviewerRole.participant)

    def broken(reviews):
        raise ValueError("bad statistics")

    monkeypatch.setattr(flagging, "find_outliers", broken)
    report = await run_flagging_analysis(db_session, event_id, DatabaseVerifier(db_session))

    assert report.errors and report.errors[0].startswith("outlier_rating")
    assert report.invalid_users_flagged == 1
    assert len(await flags_of(db_session, event_id, FlagReason.INVALID_USER)) == 1


@pytest.mark.asyncio
async def test_flagged_review_details_newest_first(db_session, world):
    older = await add_review(db_session, world.event, world.judge_a, 1, body="Terrible")
    newer = await add_review(db_session, world.event, world.outsider, 2, role=ReviewerRole.participant, body="Meh")
    db_session.add_all([
        ReviewFlag(review_id=older.id, reason=FlagReason.OUTLIER_RATING, metadata_json={"mad_zscore": -4.0},
                   detection_method="MAD_zscore", updated_at=datetime(2026, 1, 1)),
        ReviewFlag(review_id=newer.id, reason=FlagReason.INVALID_USER, metadata_json={},
                   detection_method="user_verification", updated_at=datetime(2026, 2, 1)),
    ])
    await db_session.commit()

    details = await get_flagged_reviews_with_details(db_session, world.event.id)

    assert [d["review_id"] for d in details] == [newer.id, older.id]
    assert details[0]["reason"] == "invalid_user"
    assert details[0]["author_name"] == "Oscar"
    assert details[0]["author_email"] == "oscar@hack.test"
    assert details[0]["body"] == "Meh"
    assert details[0]["role"] == "participant"
    assert details[1]["rating"] == 1
    assert details[1]["metadata"] == {"mad_zscore": -4.0}
