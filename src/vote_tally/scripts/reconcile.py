"""Operator tooling for published subject scores.

Examples:
    python -m vote_tally.scripts.reconcile --check
    python -m vote_tally.scripts.reconcile --subject caption-42
    python -m vote_tally.scripts.reconcile --sweep --limit 500
    python -m vote_tally.scripts.reconcile --rebuild-all
"""
from __future__ import annotations

import argparse
import sys
from collections.abc import Callable, Sequence

from sqlalchemy.orm import Session

from vote_tally.db.session import SessionLocal
from vote_tally.services.errors import VoteEngineError
from vote_tally.services.reconciler import AggregateReconciler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Check or repair subject scores")
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--subject", help="Recompute the score of one subject")
    action.add_argument(
        "--sweep",
        action="store_true",
        help="Reconcile subjects marked as lagging the ledger",
    )
    action.add_argument(
        "--rebuild-all",
        action="store_true",
        help="Recompute every subject's score from the ledger",
    )
    action.add_argument(
        "--check",
        action="store_true",
        help="Report subjects whose score differs from the ledger (exit 1 if any)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum subjects to process with --sweep",
    )
    return parser


def main(
    argv: Sequence[str] | None = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> int:
    args = build_parser().parse_args(argv)

    with session_factory() as db:
        reconciler = AggregateReconciler(db)
        try:
            if args.subject:
                score = reconciler.reconcile(args.subject)
                print(f"[reconcile] {args.subject}: score={score}")
            elif args.sweep:
                done = reconciler.sweep(args.limit)
                print(f"[reconcile] swept {len(done)} subject(s)")
            elif args.rebuild_all:
                corrected = reconciler.rebuild_all()
                for subject_id, score in corrected.items():
                    print(f"[reconcile] corrected {subject_id}: score={score}")
                print(f"[reconcile] {len(corrected)} subject(s) corrected")
            else:
                drifted = reconciler.find_drifted()
                for subject_id, score, total in drifted:
                    print(f"[reconcile] drift {subject_id}: score={score} ledger={total}")
                if drifted:
                    return 1
                print("[reconcile] all scores match the ledger")
        except VoteEngineError as exc:
            print(f"[reconcile] ERROR: {exc}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
