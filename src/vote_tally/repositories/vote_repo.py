"""Data access for the vote ledger."""
from __future__ import annotations

import logging

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vote_tally.db.time import utcnow
from vote_tally.models.vote import Vote
from vote_tally.services.errors import ConflictError
from vote_tally.services.vote_state import LedgerOp, Transition, VoteState

__all__ = ["VoteLedger"]

logger = logging.getLogger(__name__)


class VoteLedger:
    """Authoritative store of at most one signed vote per (subject, voter).

    Every mutation is guarded by the natural key: inserts rely on the
    composite primary key, updates and deletes only touch the row if it still
    holds the value the caller decided from.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the ledger with a SQLAlchemy session."""
        self.session = session

    def get(self, subject_id: str, voter_id: str) -> Vote | None:
        """Return the voter's current vote on a subject, or None if absent."""
        return self.session.execute(
            select(Vote).where(Vote.subject_id == subject_id, Vote.voter_id == voter_id)
        ).scalar_one_or_none()

    def current_state(self, subject_id: str, voter_id: str) -> VoteState:
        """Return the voter's state on a subject."""
        vote = self.get(subject_id, voter_id)
        return VoteState.from_value(vote.value if vote is not None else None)

    def apply(self, subject_id: str, voter_id: str, transition: Transition) -> None:
        """Execute the ledger operation chosen by the state machine.

        Raises:
            ConflictError: If another writer inserted, changed or removed the
                row after ``transition`` was decided.
        """
        if transition.op is LedgerOp.INSERT:
            self._insert(subject_id, voter_id, transition)
        elif transition.op is LedgerOp.UPDATE:
            self._compare_and_set(subject_id, voter_id, transition)
        else:
            self._compare_and_delete(subject_id, voter_id, transition)

        logger.debug(
            "Ledger %s for subject=%s voter=%s (%s -> %s)",
            transition.op.value,
            subject_id,
            voter_id,
            transition.previous.name,
            transition.next_state.name,
        )

    def _insert(self, subject_id: str, voter_id: str, transition: Transition) -> None:
        now = utcnow()
        vote = Vote(
            subject_id=subject_id,
            voter_id=voter_id,
            value=transition.value,
            created_at=now,
            modified_at=now,
        )
        try:
            # The savepoint keeps the outer transaction usable after a duplicate key.
            with self.session.begin_nested():
                self.session.add(vote)
        except IntegrityError as err:
            raise ConflictError(
                f"Vote for subject {subject_id!r} by voter {voter_id!r} already exists"
            ) from err

    def _compare_and_set(self, subject_id: str, voter_id: str, transition: Transition) -> None:
        result = self.session.execute(
            update(Vote)
            .where(
                Vote.subject_id == subject_id,
                Vote.voter_id == voter_id,
                Vote.value == int(transition.previous),
            )
            .values(value=transition.value, modified_at=utcnow())
        )
        if result.rowcount != 1:
            raise ConflictError(
                f"Vote for subject {subject_id!r} by voter {voter_id!r} changed concurrently"
            )

    def _compare_and_delete(self, subject_id: str, voter_id: str, transition: Transition) -> None:
        result = self.session.execute(
            delete(Vote).where(
                Vote.subject_id == subject_id,
                Vote.voter_id == voter_id,
                Vote.value == int(transition.previous),
            )
        )
        if result.rowcount != 1:
            raise ConflictError(
                f"Vote for subject {subject_id!r} by voter {voter_id!r} changed concurrently"
            )

    def sum_for_subject(self, subject_id: str) -> int:
        """Return the sum of all vote values for a subject (0 when none)."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Vote.value), 0)).where(Vote.subject_id == subject_id)
        ).scalar_one()
        return int(total)

    def count_for_subject(self, subject_id: str) -> int:
        """Return how many voters currently hold a vote on a subject."""
        return int(
            self.session.execute(
                select(func.count()).select_from(Vote).where(Vote.subject_id == subject_id)
            ).scalar_one()
        )

    def list_for_voter(self, voter_id: str, direction: VoteState | None = None) -> list[Vote]:
        """Return a voter's votes, newest first, optionally filtered by direction."""
        stmt = select(Vote).where(Vote.voter_id == voter_id)
        if direction is not None and direction is not VoteState.NONE:
            stmt = stmt.where(Vote.value == int(direction))
        stmt = stmt.order_by(Vote.created_at.desc(), Vote.subject_id)
        return list(self.session.execute(stmt).scalars())

    def tally_for_voter(self, voter_id: str) -> tuple[int, int, int]:
        """Return ``(total, upvotes, downvotes)`` cast by a voter."""
        row = self.session.execute(
            select(
                func.count(),
                func.coalesce(func.sum(case((Vote.value == 1, 1), else_=0)), 0),
                func.coalesce(func.sum(case((Vote.value == -1, 1), else_=0)), 0),
            )
            .select_from(Vote)
            .where(Vote.voter_id == voter_id)
        ).one()
        return int(row[0]), int(row[1]), int(row[2])
