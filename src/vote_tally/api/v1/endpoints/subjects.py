"""Subject score endpoints for the vote tally API."""

from fastapi import APIRouter

from vote_tally.schemas.subject import SubjectScore
from vote_tally.services.errors import VoteEngineError
from vote_tally.services.reconciler import AggregateReconciler

from ..dependencies import CurrentVoterDep, SessionDep, VoteServiceDep, http_error_for

router = APIRouter(prefix="/subjects", tags=["subjects"])


@router.get("/{subject_id}", response_model=SubjectScore)
def get_subject_score(subject_id: str, service: VoteServiceDep) -> SubjectScore:
    """Return the published score of a subject."""
    try:
        score = service.score(subject_id)
    except VoteEngineError as err:
        raise http_error_for(err) from err
    return SubjectScore(id=subject_id, score=score)


@router.post("/{subject_id}/reconcile", response_model=SubjectScore)
def reconcile_subject(
    subject_id: str,
    _voter_id: CurrentVoterDep,
    db: SessionDep,
) -> SubjectScore:
    """Recompute a subject's score from the ledger and publish it."""
    try:
        score = AggregateReconciler(db).reconcile(subject_id)
    except VoteEngineError as err:
        raise http_error_for(err) from err
    return SubjectScore(id=subject_id, score=score)
