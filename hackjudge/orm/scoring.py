"""
hackjudge/orm/scoring.py
Judge scores, round finalization state and the rank-delta cache.
"""
from sqlalchemy import (
    Column, Integer, Boolean, DateTime, Text, Numeric, ForeignKey,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from hackjudge.orm.base import TimestampedModel


class Score(TimestampedModel):
    """
    One judge's score of one submission on one criterion in one round.

    Rows are replaced as a set on resubmission, never updated in place.
    """
    __tablename__ = "scores"

    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    judge_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    criterion_id = Column(Integer, ForeignKey("rubric_criteria.id", ondelete="CASCADE"), nullable=False)
    round_number = Column(Integer, nullable=False)
    score = Column(Numeric(5, 2), nullable=False)
    comment = Column(Text, nullable=True)
    feedback = Column(Text, nullable=True)

    criterion = relationship("Criterion")

    __table_args__ = (
        UniqueConstraint(
            "submission_id", "judge_id", "criterion_id", "round_number",
            name="uq_score_submission_judge_criterion_round"
        ),
        CheckConstraint("round_number >= 1", name="ck_score_round"),
        CheckConstraint("score >= 0", name="ck_score_non_negative"),
        Index("ix_scores_submission_round", "submission_id", "round_number"),
    )


class RoundStatus(TimestampedModel):
    """One-way finalization record for (event, round)."""
    __tablename__ = "round_status"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    round_number = Column(Integer, nullable=False)
    is_finalized = Column(Boolean, nullable=False, default=False)
    finalized_at = Column(DateTime, nullable=True)
    finalized_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        UniqueConstraint("event_id", "round_number", name="uq_round_status_event_round"),
        CheckConstraint("round_number >= 1", name="ck_round_status_round"),
    )


class LeaderboardPosition(TimestampedModel):
    """
    Last broadcast rank of a submission in a round.

    Cache only: rankings are always re-derived from scores. Used to report
    rank and score deltas between leaderboard updates.
    """
    __tablename__ = "leaderboard_positions"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    round_number = Column(Integer, nullable=False)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False)
    rank = Column(Integer, nullable=False)
    previous_rank = Column(Integer, nullable=True)
    aggregate_score = Column(Numeric(6, 2), nullable=False)
    previous_score = Column(Numeric(6, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("event_id", "round_number", "submission_id", name="uq_leaderboard_position"),
    )
