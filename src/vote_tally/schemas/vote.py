"""Vote-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class VoteCreate(BaseModel):
    """Schema for casting a vote."""

    subject_id: str = Field(..., min_length=1, max_length=64)
    direction: Literal[-1, 1] = Field(..., description="1 for upvote, -1 for downvote")


class VoteResponse(BaseModel):
    """Voter state and subject score after a vote request."""

    subject_id: str
    state: Literal[-1, 0, 1] = Field(..., description="1 upvoted, -1 downvoted, 0 no vote")
    score: int
    reconciled: bool = Field(
        True,
        description="False when the vote is stored but the score has not caught up yet",
    )


class MyVoteResponse(BaseModel):
    """The caller's current vote on a subject."""

    direction: Literal[-1, 0, 1]


class VoteRecordOut(BaseModel):
    """One entry of the caller's vote history."""

    subject_id: str
    direction: Literal[-1, 1]
    created_at: datetime
    modified_at: datetime


class VoterSummaryResponse(BaseModel):
    """The caller's vote counts and filtered vote history."""

    total: int
    upvotes: int
    downvotes: int
    filter: Literal["all", "upvotes", "downvotes"]
    votes: list[VoteRecordOut]
