"""
hackjudge/schemas/judging.py
Request models for rubric definition and score submission.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CriterionCreate(BaseModel):
    """Definition of a single rubric criterion."""
    key: str = Field(..., min_length=1, max_length=100, description="Stable criterion identifier")
    label: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    weight: int = Field(1, ge=0, description="Relative weight; 0 excludes the criterion from aggregates")
    max_score: Decimal = Field(Decimal("10"), gt=0, description="Upper bound of the score scale")


class RubricCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    criteria: List[CriterionCreate] = Field(..., min_length=1)


class ScoreItemIn(BaseModel):
    criteria_id: str = Field(..., min_length=1, description="Criterion key from the event rubric")
    score: Decimal = Field(..., description="0 to the criterion max_score in steps of 0.5")
    comment: Optional[str] = Field(None, max_length=2000)


class ScoreSubmission(BaseModel):
    """
    A judge's complete score set for a submission in one round.

    Replaces any scores the judge already gave the submission in that round.
    """
    submission_id: int
    round: int = Field(1, ge=1)
    scores: List[ScoreItemIn] = Field(..., min_length=1)
    feedback: Optional[str] = Field(None, max_length=5000)

    @field_validator("feedback")
    @classmethod
    def strip_feedback(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None
