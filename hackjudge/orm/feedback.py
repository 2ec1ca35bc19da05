"""
hackjudge/orm/feedback.py
Cached automated feedback for a submission.
"""
from sqlalchemy import Column, Integer, JSON, ForeignKey

from hackjudge.orm.base import TimestampedModel


class FeedbackSummary(TimestampedModel):
    __tablename__ = "feedback_summaries"

    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, unique=True)
    summary = Column(JSON, nullable=False, default=list)
    next_steps = Column(JSON, nullable=False, default=list)
