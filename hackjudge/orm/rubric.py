"""
hackjudge/orm/rubric.py
Event rubric and its weighted criteria.

Criteria are immutable once scoring has begun; the core never edits them.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Numeric, ForeignKey, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from hackjudge.orm.base import TimestampedModel

DEFAULT_MAX_SCORE = 10


class Rubric(TimestampedModel):
    __tablename__ = "rubrics"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, unique=True)
    name = Column(String(200), nullable=False)

    criteria = relationship(
        "Criterion",
        back_populates="rubric",
        order_by="Criterion.display_order",
        cascade="all, delete-orphan",
    )


class Criterion(TimestampedModel):
    __tablename__ = "rubric_criteria"

    rubric_id = Column(Integer, ForeignKey("rubrics.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    label = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    weight = Column(Integer, nullable=False, default=1)
    max_score = Column(Numeric(5, 2), nullable=False, default=DEFAULT_MAX_SCORE)
    display_order = Column(Integer, nullable=False, default=0)

    rubric = relationship("Rubric", back_populates="criteria")

    __table_args__ = (
        UniqueConstraint("rubric_id", "key", name="uq_rubric_criterion_key"),
        CheckConstraint("weight >= 0", name="ck_criterion_weight"),
        CheckConstraint("max_score > 0", name="ck_criterion_max_score"),
    )
