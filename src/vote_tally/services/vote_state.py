"""Vote transition table shared by the server engine and client mirrors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Final


class VoteState(IntEnum):
    """A voter's standing on one subject; the integer is its score contribution."""

    NONE = 0
    UP = 1
    DOWN = -1

    @classmethod
    def from_value(cls, value: int | None) -> VoteState:
        """Map a stored ledger value (or a missing row) to a state."""
        if value is None:
            return cls.NONE
        return cls(value)


class LedgerOp(str, Enum):
    """Mutation the ledger must perform to reach the next state."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Transition:
    """Outcome of requesting a vote direction from a given state."""

    previous: VoteState
    next_state: VoteState
    op: LedgerOp

    @property
    def value(self) -> int | None:
        """Ledger value to write, or None when the row is removed."""
        if self.op is LedgerOp.DELETE:
            return None
        return int(self.next_state)

    @property
    def delta(self) -> int:
        """Signed change this transition applies to the subject's score."""
        return int(self.next_state) - int(self.previous)


_TRANSITIONS: Final[dict[tuple[VoteState, VoteState], tuple[VoteState, LedgerOp]]] = {
    (VoteState.NONE, VoteState.UP): (VoteState.UP, LedgerOp.INSERT),
    (VoteState.NONE, VoteState.DOWN): (VoteState.DOWN, LedgerOp.INSERT),
    (VoteState.UP, VoteState.UP): (VoteState.NONE, LedgerOp.DELETE),
    (VoteState.UP, VoteState.DOWN): (VoteState.DOWN, LedgerOp.UPDATE),
    (VoteState.DOWN, VoteState.DOWN): (VoteState.NONE, LedgerOp.DELETE),
    (VoteState.DOWN, VoteState.UP): (VoteState.UP, LedgerOp.UPDATE),
}


def decide(current: VoteState, requested: VoteState) -> Transition:
    """Return the transition for requesting ``requested`` while at ``current``.

    Re-requesting the current direction toggles the vote off; requesting the
    opposite direction flips it in a single update.

    Raises:
        ValueError: If ``requested`` is not UP or DOWN.
    """
    current = VoteState(current)
    requested = VoteState(requested)
    if requested is VoteState.NONE:
        raise ValueError("A vote request must be UP or DOWN")
    next_state, op = _TRANSITIONS[(current, requested)]
    return Transition(previous=current, next_state=next_state, op=op)
