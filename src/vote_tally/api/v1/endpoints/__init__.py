# src/vote_tally/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .subjects import router as subjects_router
from .votes import router as votes_router

__all__ = [
    "subjects_router",
    "votes_router",
]
