# src/vote_tally/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import subjects_router, votes_router

__all__ = [
    "subjects_router",
    "votes_router",
]
