"""Subject-related Pydantic schemas."""

from pydantic import BaseModel


class SubjectScore(BaseModel):
    """Published score of a subject."""

    id: str
    score: int
