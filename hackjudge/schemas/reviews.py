"""
hackjudge/schemas/reviews.py
Request models for event reviews.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ReviewCreate(BaseModel):
    rating: int = Field(..., strict=True, description="Whole stars, 1 to 5")
    body: str = Field("", max_length=5000)
    attendance_code: Optional[str] = Field(None, max_length=64)

    @field_validator("body")
    @classmethod
    def strip_body(cls, v: str) -> str:
        return v.strip()
