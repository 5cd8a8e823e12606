# api/schemas.py

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class PredictRequest(BaseModel):
    """Request schema for image classification inference."""
    image_base64: str = Field(..., min_length=1, description="Base64-encoded JPEG image.")
    top_k: Optional[int] = Field(
        None, ge=1, description="Number of ranked classes to return (default: all)."
    )


class BestMatch(BaseModel):
    """Most likely class for the image."""
    index: int
    label: str
    score: float


class RankedLabel(BaseModel):
    """One entry of the ranking, best first."""
    rank: int
    index: int
    label: str
    probability: float


class PredictResponse(BaseModel):
    """Response schema for image classification inference."""
    best_match: BestMatch = Field(..., description="Highest-probability class.")
    ranking: list[RankedLabel] = Field(
        ..., description="Classes sorted by probability, ties by ascending index."
    )
