"""Optimistic client-side vote prediction.

UI layers use ``OptimisticVoteMirror`` to show the outcome of a click before
the server answers. The prediction comes from the same transition table the
server uses, so a successful response only confirms it; a failed one restores
exactly what was displayed before the click.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from vote_tally.services.vote_service import VoteResult
from vote_tally.services.vote_state import VoteState, decide


@dataclass(frozen=True)
class MirrorSnapshot:
    """Displayed state captured before a prediction."""

    state: VoteState
    score: int


class OptimisticVoteMirror:
    """Disposable local copy of one voter's state and one subject's score."""

    def __init__(self, state: VoteState = VoteState.NONE, score: int = 0) -> None:
        self.state = VoteState(state)
        self.score = score
        self._snapshot: MirrorSnapshot | None = None

    @property
    def pending(self) -> bool:
        """True while a prediction awaits confirmation or rollback."""
        return self._snapshot is not None

    def predict(self, direction: VoteState) -> VoteState:
        """Apply ``direction`` locally and return the predicted state.

        Raises:
            RuntimeError: If an earlier prediction has not been confirmed or
                rolled back yet.
        """
        if self.pending:
            raise RuntimeError("A vote is already awaiting the server's answer")
        transition = decide(self.state, direction)
        self._snapshot = MirrorSnapshot(state=self.state, score=self.score)
        self.state = transition.next_state
        self.score += transition.delta
        return self.state

    def confirm(self, result: VoteResult) -> None:
        """Adopt the server's authoritative state and score."""
        self.state = result.state
        self.score = result.score
        self._snapshot = None

    def rollback(self) -> None:
        """Restore the state and score displayed before the last prediction."""
        if self._snapshot is None:
            return
        self.state = self._snapshot.state
        self.score = self._snapshot.score
        self._snapshot = None

    def cast(self, direction: VoteState, submit: Callable[[VoteState], VoteResult]) -> VoteResult:
        """Predict, submit to the server, then confirm or roll back.

        Any exception raised by ``submit`` rolls the mirror back and propagates.
        """
        self.predict(direction)
        try:
            result = submit(direction)
        except Exception:
            self.rollback()
            raise
        self.confirm(result)
        return result
