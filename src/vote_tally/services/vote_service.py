"""Vote orchestration: decide, mutate the ledger, publish the score."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vote_tally.core.settings import settings
from vote_tally.models.vote import VOTER_ID_MAX_LENGTH
from vote_tally.repositories.vote_repo import VoteLedger
from vote_tally.services.errors import (
    ConflictError,
    NotAuthenticated,
    ReconciliationFailure,
    StorageUnavailable,
    VoteEngineError,
)
from vote_tally.services.reconciler import AggregateReconciler
from vote_tally.services.vote_state import Transition, VoteState, decide

logger = logging.getLogger(__name__)

HistoryFilter = Literal["all", "upvotes", "downvotes"]

# Picks the transition for the voter's current state; None means "leave as is".
_Chooser = Callable[[VoteState], Transition | None]

_FILTER_DIRECTIONS: dict[str, VoteState | None] = {
    "all": None,
    "upvotes": VoteState.UP,
    "downvotes": VoteState.DOWN,
}


@dataclass(frozen=True)
class VoteResult:
    """Outcome of a vote request as seen by the caller."""

    subject_id: str
    state: VoteState
    score: int
    # False when the vote is durable but the published score still lags it.
    reconciled: bool = True


@dataclass(frozen=True)
class VoterSummary:
    """Counts of the votes a voter currently holds."""

    total: int
    upvotes: int
    downvotes: int


@dataclass(frozen=True)
class VoteRecord:
    """One entry of a voter's vote history."""

    subject_id: str
    state: VoteState
    created_at: datetime
    modified_at: datetime


class VoteService:
    """Single entry point for casting and inspecting votes.

    Each call runs in its own transaction on ``session``; callers must not
    touch the ledger or the reconciler directly.
    """

    def __init__(
        self,
        session: Session,
        ledger: VoteLedger | None = None,
        reconciler: AggregateReconciler | None = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or VoteLedger(session)
        self.reconciler = reconciler or AggregateReconciler(session, ledger=self.ledger)

    def vote(self, subject_id: str, voter_id: str | None, direction: VoteState) -> VoteResult:
        """Apply ``direction`` for ``voter_id`` on ``subject_id``.

        Args:
            subject_id: Subject being voted on.
            voter_id: Opaque identity supplied by the identity provider.
            direction: ``VoteState.UP`` or ``VoteState.DOWN``.

        Returns:
            The voter's new state and the subject's published score.

        Raises:
            NotAuthenticated: If ``voter_id`` is missing or blank.
            SubjectNotFound: If the subject does not exist.
            ConflictError: If the natural key kept changing under every retry.
            StorageUnavailable: On transient storage failure; nothing persisted.
        """
        voter_id = self._require_voter(voter_id)
        direction = VoteState(direction)
        if direction is VoteState.NONE:
            raise ValueError("A vote request must be UP or DOWN")

        return self._run(subject_id, voter_id, lambda current: decide(current, direction))

    def retract(self, subject_id: str, voter_id: str | None) -> VoteResult:
        """Remove the voter's vote on ``subject_id`` if one exists."""
        voter_id = self._require_voter(voter_id)

        def _toggle_off(current: VoteState) -> Transition | None:
            if current is VoteState.NONE:
                return None
            return decide(current, current)

        return self._run(subject_id, voter_id, _toggle_off)

    def _run(self, subject_id: str, voter_id: str, choose: _Chooser) -> VoteResult:
        attempts = settings.vote_conflict_retries + 1
        attempt = 0
        with self.reconciler.serialize(subject_id):
            while True:
                attempt += 1
                try:
                    return self._apply_once(subject_id, voter_id, choose)
                except ConflictError:
                    self.session.rollback()
                    if attempt >= attempts:
                        logger.warning(
                            "Vote on subject %s by %s still conflicting after %d attempt(s)",
                            subject_id,
                            voter_id,
                            attempts,
                        )
                        raise
                    logger.warning(
                        "Vote on subject %s by %s conflicted; re-reading and retrying",
                        subject_id,
                        voter_id,
                    )
                except SQLAlchemyError as err:
                    self.session.rollback()
                    raise StorageUnavailable(f"Vote storage unavailable: {err}") from err
                except VoteEngineError:
                    self.session.rollback()
                    raise

    def _apply_once(self, subject_id: str, voter_id: str, choose: _Chooser) -> VoteResult:
        subject = self.reconciler.lock_subject(subject_id)
        current = self.ledger.current_state(subject_id, voter_id)
        transition = choose(current)

        if transition is None:
            score = subject.score
            self.session.commit()
            return VoteResult(subject_id=subject_id, state=current, score=score)

        self.ledger.apply(subject_id, voter_id, transition)

        reconciled = True
        try:
            score = self.reconciler.publish(subject)
        except ReconciliationFailure:
            # The vote stands; the pending marker commits with it.
            reconciled = False
            score = subject.score

        self.session.commit()
        logger.debug(
            "Voter %s on subject %s: %s -> %s, score=%d",
            voter_id,
            subject_id,
            transition.previous.name,
            transition.next_state.name,
            score,
        )
        return VoteResult(
            subject_id=subject_id,
            state=transition.next_state,
            score=score,
            reconciled=reconciled,
        )

    @staticmethod
    def _require_voter(voter_id: str | None) -> str:
        if voter_id is None or not str(voter_id).strip():
            raise NotAuthenticated("A voter identity is required to vote")
        if len(str(voter_id)) > VOTER_ID_MAX_LENGTH:
            raise NotAuthenticated(
                f"Voter identity longer than {VOTER_ID_MAX_LENGTH} characters"
            )
        return str(voter_id)

    @contextmanager
    def _read(self) -> Iterator[None]:
        """Run a read in its own transaction and end it however the block exits."""
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as err:
            self.session.rollback()
            raise StorageUnavailable(f"Vote storage unavailable: {err}") from err
        except VoteEngineError:
            self.session.rollback()
            raise

    def current(self, subject_id: str, voter_id: str | None) -> VoteState:
        """Return the voter's current state on a subject."""
        voter_id = self._require_voter(voter_id)
        with self._read():
            return self.ledger.current_state(subject_id, voter_id)

    def score(self, subject_id: str) -> int:
        """Return the subject's published score."""
        with self._read():
            return self.reconciler.current_score(subject_id)

    def summary(self, voter_id: str | None) -> VoterSummary:
        """Return how many votes, upvotes and downvotes the voter holds."""
        voter_id = self._require_voter(voter_id)
        with self._read():
            return self._summary(voter_id)

    def history(self, voter_id: str | None, filter_: HistoryFilter = "all") -> Sequence[VoteRecord]:
        """Return the voter's votes, newest first, filtered by direction."""
        voter_id = self._require_voter(voter_id)
        direction = self._filter_direction(filter_)
        with self._read():
            return self._history(voter_id, direction)

    def overview(
        self,
        voter_id: str | None,
        filter_: HistoryFilter = "all",
    ) -> tuple[VoterSummary, Sequence[VoteRecord]]:
        """Return the voter's counts and filtered history read in one transaction."""
        voter_id = self._require_voter(voter_id)
        direction = self._filter_direction(filter_)
        with self._read():
            return self._summary(voter_id), self._history(voter_id, direction)

    @staticmethod
    def _filter_direction(filter_: str) -> VoteState | None:
        if filter_ not in _FILTER_DIRECTIONS:
            raise ValueError(f"Unknown vote filter {filter_!r}")
        return _FILTER_DIRECTIONS[filter_]

    def _summary(self, voter_id: str) -> VoterSummary:
        total, upvotes, downvotes = self.ledger.tally_for_voter(voter_id)
        return VoterSummary(total=total, upvotes=upvotes, downvotes=downvotes)

    def _history(self, voter_id: str, direction: VoteState | None) -> list[VoteRecord]:
        return [
            VoteRecord(
                subject_id=vote.subject_id,
                state=VoteState.from_value(vote.value),
                created_at=vote.created_at,
                modified_at=vote.modified_at,
            )
            for vote in self.ledger.list_for_voter(voter_id, direction)
        ]
