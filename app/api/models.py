from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, Field


class SessionPhase(StrEnum):
    not_started = "not_started"
    playing = "playing"
    ended = "ended"


class SessionState(BaseModel):
    """The one mutable game session of a running process."""

    current_question: str = ""
    # None until the first question is loaded, so no answer can match before that.
    current_solution: int | None = None
    score: int = Field(default=0, ge=0)
    phase: SessionPhase = SessionPhase.not_started
    user_id: int | None = None


class Question(BaseModel):
    question: str
    solution: int


class GameResult(BaseModel):
    final_score: int
    high_score: int


class HighScoreEntry(BaseModel):
    username: str
    score: int


class User(BaseModel):
    id: int
    username: str
    password_hash: str


class TokenPayload(BaseModel):
    user_id: int
    username: str


class AuthResult(BaseModel):
    token: str
    user_id: int
    username: str


class CredentialsRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=256)


class AuthResponse(BaseModel):
    token: str
    user_id: int


class AnswerRequest(BaseModel):
    # Strict: "42" is rejected, 42 and 42.0 are accepted.
    answer: Annotated[float, Field(strict=True)]


class AnswerResponse(BaseModel):
    is_correct: bool
    score: int


class QuestionResponse(BaseModel):
    question: str


class LeaderboardResponse(BaseModel):
    high_scores: list[HighScoreEntry]


class UserHighScoreResponse(BaseModel):
    high_score: int
