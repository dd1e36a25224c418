"""
Wire models shared by the examiner, decision engine and transcript.

All of these are serialized into the transcript JSON, so field names are
part of the persisted format and must not be renamed.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROTOCOL_VERSION = "aigit/0.1"

class Decision(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class ExamQuestion(BaseModel):
    """A single exam question. Presence of choices marks it multiple-choice."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    category: str
    prompt: str
    choices: Optional[List[str]] = None

    @field_validator("choices")
    @classmethod
    def _choice_count(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is not None and not 2 <= len(v) <= 6:
            raise ValueError(f"multiple-choice questions need 2-6 choices, got {len(v)}")
        return v

    @property
    def is_multiple_choice(self) -> bool:
        return self.choices is not None


class Exam(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    protocol_version: str = PROTOCOL_VERSION
    questions: List[ExamQuestion] = Field(default_factory=list)

    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]


class Answers(BaseModel):
    """Question id -> free-text answer. Missing and empty both mean unanswered."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    answers: Dict[str, str] = Field(default_factory=dict)

    def get(self, question_id: str) -> str:
        return self.answers.get(question_id) or ""

    def is_answered(self, question_id: str) -> bool:
        return bool(self.get(question_id).strip())


class QuestionScore(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    category: str
    score: float
    completeness: float
    specificity: float
    notes: List[str] = Field(default_factory=list)


class Score(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    total_score: float
    per_question: List[QuestionScore] = Field(default_factory=list)
    hallucination_flags: List[str] = Field(default_factory=list)


class PolicyThresholds(BaseModel):
    """Frozen snapshot of the thresholds a transcript was graded under."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_total_score: float
    required_categories: List[str]
    max_hallucination_flags: int


class ProviderMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    provider: str
    model: str
    prompt_version: str


__all__ = [
    "PROTOCOL_VERSION",
    "Answers",
    "Decision",
    "Exam",
    "ExamQuestion",
    "PolicyThresholds",
    "ProviderMetadata",
    "QuestionScore",
    "Score",
]
