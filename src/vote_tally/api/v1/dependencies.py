"""Shared API dependencies for voter identity and the vote engine."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from vote_tally.core.security import decode_voter_id
from vote_tally.db.session import get_db
from vote_tally.services.errors import (
    ConflictError,
    NotAuthenticated,
    StorageUnavailable,
    SubjectNotFound,
    VoteEngineError,
)
from vote_tally.services.vote_service import VoteService

# Missing credentials are reported as NotAuthenticated rather than FastAPI's 403.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]

# Seconds a client should wait before retrying after StorageUnavailable.
RETRY_AFTER_SECONDS = 1


def http_error_for(err: VoteEngineError) -> HTTPException:
    """Translate a vote engine failure into the HTTP error the caller sees."""
    if isinstance(err, NotAuthenticated):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(err, SubjectNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")
    if isinstance(err, ConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Vote changed concurrently; please retry",
        )
    if isinstance(err, StorageUnavailable):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Vote storage temporarily unavailable",
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Vote could not be processed",
    )


def get_current_voter(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """Return the opaque voter id carried by the bearer token.

    Raises:
        HTTPException: 401 if the token is missing or invalid.
    """
    voter_id = decode_voter_id(credentials.credentials) if credentials else None
    if voter_id is None:
        raise http_error_for(NotAuthenticated("Missing or invalid bearer token"))
    return voter_id


def get_vote_service(db: SessionDep) -> VoteService:
    """Return a vote service bound to the request's session."""
    return VoteService(db)


CurrentVoterDep = Annotated[str, Depends(get_current_voter)]
VoteServiceDep = Annotated[VoteService, Depends(get_vote_service)]
