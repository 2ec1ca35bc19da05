"""
hackjudge/orm/review.py
Event reviews and the integrity flags attached to them.
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Text, Float, JSON, ForeignKey,
    UniqueConstraint, CheckConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship

from hackjudge.orm.base import TimestampedModel


class ReviewerRole(str, Enum):
    participant = "participant"
    judge = "judge"
    organizer = "organizer"


class FlagReason(str, Enum):
    OUTLIER_RATING = "outlier_rating"
    INVALID_USER = "invalid_user"
    SUSPICIOUS_PATTERN = "suspicious_pattern"


class Review(TimestampedModel):
    """
    One rating + text review per (event, user). A second submission updates
    the row in place. ``role`` is captured at review time and never re-derived.
    """
    __tablename__ = "event_reviews"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(ReviewerRole), nullable=False)
    rating = Column(Integer, nullable=False)
    body = Column(Text, nullable=False, default="")

    author = relationship("User")
    flags = relationship("ReviewFlag", back_populates="review", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_review_event_user"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating"),
    )


class ReviewFlag(TimestampedModel):
    """
    Derived suspicion marker. At most one per (review, reason); analysis
    runs refresh it in place.
    """
    __tablename__ = "review_flags"

    review_id = Column(Integer, ForeignKey("event_reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(
        SQLEnum(FlagReason, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    score = Column(Float, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    detection_method = Column(String(50), nullable=True)

    review = relationship("Review", back_populates="flags")

    __table_args__ = (
        UniqueConstraint("review_id", "reason", name="uq_review_flag_reason"),
    )
