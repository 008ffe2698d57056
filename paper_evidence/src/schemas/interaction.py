"""
User-scoped records: learned concepts and interactions.

User and paper ids may be missing for anonymous sessions; record ids then
include a random component (see ids.py).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PersonaConcept(BaseModel):
    """A concept the user already knows or has learned."""

    user_id: Optional[str] = None
    concept: str = Field(..., min_length=1)
    description: Optional[str] = None
    first_seen_paper_id: Optional[str] = None
    learned_at: Optional[datetime] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class Interaction(BaseModel):
    """A question, follow-up or summary request tied to a paper."""

    user_id: Optional[str] = None
    paper_id: Optional[str] = None
    interaction_type: str = Field(..., examples=["question", "selection-summary"])
    prompt: str = ""
    response: Optional[str] = None
    created_at: Optional[datetime] = None
    chunk_ids: list[str] = Field(
        default_factory=list,
        description="Record ids of chunks used as evidence",
    )
