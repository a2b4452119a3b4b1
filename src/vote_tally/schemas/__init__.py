# src/vote_tally/schemas/__init__.py
"""Pydantic schemas for the vote tally API."""

from .subject import SubjectScore
from .vote import (
    MyVoteResponse,
    VoteCreate,
    VoteRecordOut,
    VoteResponse,
    VoterSummaryResponse,
)

__all__ = [
    "MyVoteResponse",
    "SubjectScore",
    "VoteCreate",
    "VoteRecordOut",
    "VoteResponse",
    "VoterSummaryResponse",
]
