"""
Pass/fail decision engine.

Three independent AND-conditions, checked in a fixed order so the first
failing reason is reported:

  1. total_score >= min_total_score
  2. len(hallucination_flags) <= max_hallucination_flags
  3. every question in a required category has a non-blank answer

The same predicate is used at grading time (against the live Policy) and at
verification time (against the current Policy, or a frozen snapshot).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, Union

from aigit.models import Answers, Decision, Exam, PolicyThresholds, Score
from aigit.policy import Policy

REASON_SCORE = "score_below_minimum"
REASON_FLAGS = "too_many_hallucination_flags"
REASON_REQUIRED = "required_category_unanswered"


@dataclass
class DecisionResult:
    """Decision plus the reason it failed (empty when passing)."""

    decision: Decision
    reasons: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.decision is Decision.PASS


def thresholds_of(policy: Policy) -> PolicyThresholds:
    return PolicyThresholds(
        min_total_score=policy.min_total_score,
        required_categories=list(policy.required_categories),
        max_hallucination_flags=policy.max_hallucination_flags,
    )


def unanswered_required(exam: Exam, answers: Answers, required_categories: Sequence[str]) -> List[str]:
    """Ids of questions in a required category whose answer is blank."""
    required = set(required_categories)
    return [
        q.id for q in exam.questions
        if q.category in required and not answers.is_answered(q.id)
    ]


def evaluate(
    policy: Union[Policy, PolicyThresholds],
    exam: Exam,
    answers: Answers,
    score: Score,
) -> DecisionResult:
    """Run the decision predicate, short-circuiting on the first failure."""
    if isinstance(policy, Policy):
        policy = thresholds_of(policy)

    if score.total_score < policy.min_total_score:
        return DecisionResult(
            Decision.FAIL,
            [f"{REASON_SCORE}: {score.total_score:.2f} < {policy.min_total_score:.2f}"],
        )
    if len(score.hallucination_flags) > policy.max_hallucination_flags:
        return DecisionResult(
            Decision.FAIL,
            [f"{REASON_FLAGS}: {len(score.hallucination_flags)} > {policy.max_hallucination_flags}"],
        )
    missing = unanswered_required(exam, answers, policy.required_categories)
    if missing:
        return DecisionResult(Decision.FAIL, [f"{REASON_REQUIRED}: {', '.join(missing)}"])
    return DecisionResult(Decision.PASS)


def decide(
    policy: Union[Policy, PolicyThresholds],
    exam: Exam,
    answers: Answers,
    score: Score,
) -> Decision:
    return evaluate(policy, exam, answers, score).decision


__all__ = [
    "REASON_FLAGS",
    "REASON_REQUIRED",
    "REASON_SCORE",
    "DecisionResult",
    "decide",
    "evaluate",
    "thresholds_of",
    "unanswered_required",
]
