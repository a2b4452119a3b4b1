"""Vote-related endpoints for the vote tally API."""

from typing import Literal

from fastapi import APIRouter, Query, status

from vote_tally.schemas.vote import (
    MyVoteResponse,
    VoteCreate,
    VoteRecordOut,
    VoteResponse,
    VoterSummaryResponse,
)
from vote_tally.services.errors import VoteEngineError
from vote_tally.services.vote_service import VoteResult
from vote_tally.services.vote_state import VoteState

from ..dependencies import CurrentVoterDep, VoteServiceDep, http_error_for

router = APIRouter(prefix="/votes", tags=["votes"])


def _to_response(result: VoteResult) -> VoteResponse:
    return VoteResponse(
        subject_id=result.subject_id,
        state=int(result.state),
        score=result.score,
        reconciled=result.reconciled,
    )


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=VoteResponse)
def cast_vote(
    vote_data: VoteCreate,
    voter_id: CurrentVoterDep,
    service: VoteServiceDep,
) -> VoteResponse:
    """Cast, flip or toggle off the caller's vote on a subject."""
    try:
        result = service.vote(vote_data.subject_id, voter_id, VoteState(vote_data.direction))
    except VoteEngineError as err:
        raise http_error_for(err) from err
    return _to_response(result)


@router.delete("/{subject_id}", response_model=VoteResponse)
def retract_vote(
    subject_id: str,
    voter_id: CurrentVoterDep,
    service: VoteServiceDep,
) -> VoteResponse:
    """Remove the caller's vote on a subject, if any."""
    try:
        result = service.retract(subject_id, voter_id)
    except VoteEngineError as err:
        raise http_error_for(err) from err
    return _to_response(result)


@router.get("/mine", response_model=VoterSummaryResponse)
def list_my_votes(
    voter_id: CurrentVoterDep,
    service: VoteServiceDep,
    filter: Literal["all", "upvotes", "downvotes"] = Query(
        "all",
        description="Restrict the history to one direction",
    ),
) -> VoterSummaryResponse:
    """Return the caller's vote counts and their votes, newest first."""
    try:
        summary, records = service.overview(voter_id, filter)
    except VoteEngineError as err:
        raise http_error_for(err) from err

    return VoterSummaryResponse(
        total=summary.total,
        upvotes=summary.upvotes,
        downvotes=summary.downvotes,
        filter=filter,
        votes=[
            VoteRecordOut(
                subject_id=record.subject_id,
                direction=int(record.state),
                created_at=record.created_at,
                modified_at=record.modified_at,
            )
            for record in records
        ],
    )


@router.get("/{subject_id}/my-vote", response_model=MyVoteResponse)
def get_my_vote(
    subject_id: str,
    voter_id: CurrentVoterDep,
    service: VoteServiceDep,
) -> MyVoteResponse:
    """Get the caller's current vote on a specific subject (0 when none)."""
    try:
        state = service.current(subject_id, voter_id)
    except VoteEngineError as err:
        raise http_error_for(err) from err
    return MyVoteResponse(direction=int(state))
