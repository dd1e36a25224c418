"""
Examiners: exam generation and grading.

Two interchangeable implementations behind one protocol:

  StaticExaminer    - fixed 8-question exam, deterministic keyword grader.
                      No external calls; exactly reproducible. Also the
                      oracle for tests.
  CodexCliExaminer  - delegates both operations to the Codex CLI backend.
                      Everything the backend returns is re-validated: it
                      crosses a process boundary and is not trusted.

The variant is chosen once from policy.provider by build_examiner(); the
decision engine and transcript never look at which one ran.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aigit.backend import BackendRunner, CodexCliRunner
from aigit.errors import (
    E_BACKEND_OUTPUT,
    E_BACKEND_SCHEMA,
    E_QUESTION_ID_DUPLICATE,
    E_QUESTION_ID_EMPTY,
    E_QUESTION_ID_MISMATCH,
    ExternalBackendError,
)
from aigit.models import (
    PROTOCOL_VERSION,
    Answers,
    Exam,
    ExamQuestion,
    QuestionScore,
    Score,
)
from aigit.policy import Policy
from aigit.redact import RedactionHit
from aigit.schema import EXAM_SCHEMA, SCORE_SCHEMA, validate_exam, validate_score

EXAM_PACKET_SCHEMA_VERSION = "aigit-exam/0.1"
TRUNCATION_MARKER = "\n\n[aigit: diff truncated]\n"

PROVIDER_CODEX_CLI = "codex-cli"
STATIC_PROMPT_VERSION = "static/0.1"
CODEX_PROMPT_VERSION = "codex-cli/0.1"

KEYWORDS_RISK = ("risk", "break", "fail", "regress", "error", "panic")
KEYWORDS_TESTING = ("test", "cargo test", "unit", "integration", "ci")
KEYWORDS_ROLLBACK = ("revert", "rollback", "backout", "feature flag", "mitigate")
KEYWORDS_SECURITY = ("auth", "authz", "pii", "secret", "token", "key", "encrypt")
KEYWORDS_DEFAULT = ("file", "module", "function", "line")

CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "risk": KEYWORDS_RISK,
    "testing": KEYWORDS_TESTING,
    "rollback": KEYWORDS_ROLLBACK,
    "security": KEYWORDS_SECURITY,
}

_TOKEN_STRIP = ",.;)(\"'`"
_MAX_PATH_TOKEN = 120


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExamContext:
    """Sanitized input bundle for one exam/commit cycle."""

    repo_id: str
    workdir: Path
    diff_patch_id: str
    diff: str
    changed_files: Tuple[str, ...]
    redactions: Tuple[RedactionHit, ...]

    @classmethod
    def create(
        cls,
        *,
        repo_id: str,
        workdir: Path,
        diff_patch_id: str,
        diff_redacted: str,
        changed_files: Sequence[str],
        redactions: Sequence[RedactionHit],
        policy: Policy,
    ) -> "ExamContext":
        """Build a context, capping the diff at the policy's character budget."""
        diff = diff_redacted
        max_chars = policy.max_context_chars()
        if len(diff) > max_chars:
            diff = diff[:max_chars] + TRUNCATION_MARKER
        return cls(
            repo_id=repo_id,
            workdir=Path(workdir),
            diff_patch_id=diff_patch_id,
            diff=diff,
            changed_files=tuple(changed_files),
            redactions=tuple(redactions),
        )

    @property
    def truncated(self) -> bool:
        return self.diff.endswith(TRUNCATION_MARKER)


class ExamPacket(BaseModel):
    """What `aigit exam --format json` prints when no answers are given."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    schema_version: str = EXAM_PACKET_SCHEMA_VERSION
    repo_id: str
    diff_patch_id: str
    changed_files: List[str]
    diff_redacted: str
    redactions: List[RedactionHit] = Field(default_factory=list)
    exam: Exam

    @classmethod
    def from_context(cls, ctx: ExamContext, exam: Exam) -> "ExamPacket":
        return cls(
            repo_id=ctx.repo_id,
            diff_patch_id=ctx.diff_patch_id,
            changed_files=list(ctx.changed_files),
            diff_redacted=ctx.diff,
            redactions=list(ctx.redactions),
            exam=exam,
        )


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class Examiner(Protocol):
    prompt_version: str

    def generate_exam(self, ctx: ExamContext) -> Exam: ...

    def grade_exam(self, ctx: ExamContext, exam: Exam, answers: Answers) -> Score: ...


# ---------------------------------------------------------------------------
# Shared grading helpers
# ---------------------------------------------------------------------------

def clamp01(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def keyword_score(answer: str, keywords: Iterable[str]) -> float:
    """1.0 for >= 2 keyword hits, 0.6 for one, 0.2 for none, 0.0 if blank."""
    if not answer.strip():
        return 0.0
    lower = answer.lower()
    hits = sum(1 for k in keywords if k.lower() in lower)
    if hits >= 2:
        return 1.0
    if hits == 1:
        return 0.6
    return 0.2


def extract_file_like_tokens(answer: str) -> List[str]:
    """Tokens that look like file paths (contain '/' and '.'), sorted, unique."""
    out = set()
    for raw in answer.split():
        token = raw.strip(_TOKEN_STRIP)
        if "/" in token and "." in token and len(token) <= _MAX_PATH_TOKEN:
            out.add(token)
    return sorted(out)


def conservative_flags(exam: Exam, answers: Answers, changed_files: Sequence[str]) -> List[str]:
    """Flag file-path tokens in answers that are not part of the change set."""
    changed = set(changed_files)
    flags: List[str] = []
    for q in exam.questions:
        answer = answers.get(q.id).strip()
        if not answer:
            continue
        for mentioned in extract_file_like_tokens(answer):
            if mentioned not in changed:
                flags.append(f"{q.id}: mentions file not in diff: {mentioned}")
    return flags


def normalize_flags(flags: Iterable[str]) -> List[str]:
    return sorted(set(flags))


# ---------------------------------------------------------------------------
# Static examiner
# ---------------------------------------------------------------------------

STATIC_QUESTIONS: Tuple[Tuple[str, str, str], ...] = (
    ("change_summary", "summary", "Summarize what changed (concrete files/modules) and why."),
    ("intent", "intent", "What user/business requirement does this satisfy?"),
    ("invariants", "invariants",
     "What assumptions does this change rely on? What invariants must remain true?"),
    ("risk", "risk", "What could break, and where would issues surface first (blast radius)?"),
    ("testing", "testing", "What tests were run? Which should exist? What coverage is missing?"),
    ("rollback", "rollback", "How would you rollback/revert/mitigate if this change causes problems?"),
    ("alternatives", "alternatives", "What alternative approach was considered, and why was it rejected?"),
    ("security_privacy", "security",
     "Any security/privacy concerns (auth/authz, PII, secrets, data access)? If not relevant, explain why."),
)


class StaticExaminer:
    """Deterministic examiner. Same inputs, same Score, every time."""

    prompt_version = STATIC_PROMPT_VERSION

    def generate_exam(self, ctx: ExamContext) -> Exam:
        return Exam(
            protocol_version=PROTOCOL_VERSION,
            questions=[ExamQuestion(id=qid, category=cat, prompt=prompt) for qid, cat, prompt in STATIC_QUESTIONS],
        )

    def grade_exam(self, ctx: ExamContext, exam: Exam, answers: Answers) -> Score:
        per_question = [self._grade_question(ctx, q, answers.get(q.id).strip()) for q in exam.questions]
        total = sum(q.score for q in per_question) / len(per_question) if per_question else 0.0
        return Score(
            total_score=total,
            per_question=per_question,
            hallucination_flags=normalize_flags(conservative_flags(exam, answers, ctx.changed_files)),
        )

    @staticmethod
    def _grade_question(ctx: ExamContext, q: ExamQuestion, answer: str) -> QuestionScore:
        notes: List[str] = []
        completeness = 1.0 if answer else 0.0
        if not answer:
            notes.append("empty answer")

        mentions_changed_file = any(f and f in answer for f in ctx.changed_files)
        if answer and not mentions_changed_file and ctx.changed_files:
            notes.append("does not mention any changed file path")

        word_count = len(answer.split())
        if answer and word_count < 20:
            notes.append(f"answer is short ({word_count} words)")

        if not answer:
            specificity = 0.0
        elif mentions_changed_file:
            specificity = 1.0
        elif word_count >= 20:
            specificity = 0.6
        else:
            specificity = 0.3

        expected = CATEGORY_KEYWORDS.get(q.category, KEYWORDS_DEFAULT)
        bonus = keyword_score(answer, expected)
        if answer and bonus <= 0.2:
            notes.append(f"missing category signals (look for: {', '.join(expected)})")

        return QuestionScore(
            id=q.id,
            category=q.category,
            score=0.4 * completeness + 0.4 * specificity + 0.2 * bonus,
            completeness=completeness,
            specificity=specificity,
            notes=notes,
        )


# ---------------------------------------------------------------------------
# Codex CLI examiner
# ---------------------------------------------------------------------------

class CodexCliExaminer:
    """Examiner that forwards to the Codex CLI and re-validates its output."""

    prompt_version = CODEX_PROMPT_VERSION

    def __init__(self, runner: BackendRunner):
        self.runner = runner

    @classmethod
    def from_policy(cls, policy: Policy) -> "CodexCliExaminer":
        return cls(CodexCliRunner.from_policy(policy))

    def generate_exam(self, ctx: ExamContext) -> Exam:
        raw = self.runner.run_json(ctx.workdir, build_generate_exam_prompt(ctx), EXAM_SCHEMA)
        return parse_exam_payload(raw)

    def grade_exam(self, ctx: ExamContext, exam: Exam, answers: Answers) -> Score:
        raw = self.runner.run_json(ctx.workdir, build_judge_prompt(ctx, exam, answers), SCORE_SCHEMA)
        score = parse_score_payload(raw)

        expected_ids = set(exam.question_ids())
        got_ids = {q.id for q in score.per_question}
        if expected_ids != got_ids:
            raise ExternalBackendError(
                "codex judge returned mismatched question ids "
                f"(expected {sorted(expected_ids)}, got {sorted(got_ids)})",
                code=E_QUESTION_ID_MISMATCH,
            )

        flags = list(score.hallucination_flags) + conservative_flags(exam, answers, ctx.changed_files)
        return score.model_copy(update={"hallucination_flags": normalize_flags(flags)})


def _load_backend_json(raw: str, what: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExternalBackendError(f"codex {what} output is not valid JSON: {exc}", code=E_BACKEND_OUTPUT) from exc


def _schema_failure(what: str, errors: List[str]) -> ExternalBackendError:
    return ExternalBackendError(
        f"codex {what} output violates schema: " + "; ".join(errors[:10]),
        code=E_BACKEND_SCHEMA,
    )


def parse_exam_payload(raw: str) -> Exam:
    """Validate a backend exam payload and enforce unique, non-empty ids."""
    data = _load_backend_json(raw, "exam")
    errors = validate_exam(data)
    if errors:
        raise _schema_failure("exam", errors)

    if not str(data.get("protocol_version", "")).strip():
        data["protocol_version"] = PROTOCOL_VERSION

    seen = set()
    for q in data["questions"]:
        qid = q["id"]
        if not qid.strip():
            raise ExternalBackendError("codex exam question id is empty", code=E_QUESTION_ID_EMPTY)
        if qid in seen:
            raise ExternalBackendError(
                f"codex exam contains duplicate question id: {qid}",
                code=E_QUESTION_ID_DUPLICATE,
            )
        seen.add(qid)

    try:
        return Exam.model_validate(data)
    except ValidationError as exc:
        raise ExternalBackendError(f"codex exam output rejected: {exc}", code=E_BACKEND_SCHEMA) from exc


_SCORE_FIELDS = ("score", "completeness", "specificity")


def _clamp_number(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return clamp01(float(value))
    return value


def clamp_score_payload(data: Any) -> Any:
    """Clamp every numeric score field into [0,1] (NaN -> 0.0) in place."""
    if not isinstance(data, dict):
        return data
    if "total_score" in data:
        data["total_score"] = _clamp_number(data["total_score"])
    for q in data.get("per_question") or []:
        if isinstance(q, dict):
            for key in _SCORE_FIELDS:
                if key in q:
                    q[key] = _clamp_number(q[key])
    return data


def parse_score_payload(raw: str) -> Score:
    """Clamp, then validate, a backend score payload."""
    data = clamp_score_payload(_load_backend_json(raw, "judge"))
    errors = validate_score(data)
    if errors:
        raise _schema_failure("judge", errors)
    try:
        return Score.model_validate(data)
    except ValidationError as exc:
        raise ExternalBackendError(f"codex judge output rejected: {exc}", code=E_BACKEND_SCHEMA) from exc


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def _context_block(ctx: ExamContext) -> List[str]:
    lines = ["changed_files:"]
    lines += [f"- {f}" for f in ctx.changed_files]
    lines += ["", "diff_redacted (may be truncated):", "-----", ctx.diff, "-----"]
    return lines


def build_generate_exam_prompt(ctx: ExamContext) -> str:
    lines = [
        'You generate a git "Proof-of-Understanding" exam tailored to a specific diff.',
        "Use ONLY the provided context; do not run commands, read files, or assume details not present.",
        "Return ONLY a JSON object matching the provided JSON Schema.",
        "",
        "Requirements:",
        "- 8 questions total (unless the diff is tiny; then >=4).",
        "- Cover these categories at least once each: summary, intent, invariants, risk, testing, "
        "rollback, alternatives, security.",
        "- Make questions diff-aware: mention concrete files/functions/behaviors present in the diff.",
        "- Include at least 3 multiple-choice questions by providing a `choices` array with 4 options.",
        "- Multiple-choice questions should be answerable with A/B/C/D.",
        "- At least one question should probe an alternative approach and ask why it was not chosen.",
        "- Question ids must be unique, non-empty, snake_case.",
        "",
    ]
    lines += _context_block(ctx)
    return "\n".join(lines) + "\n"


def build_judge_prompt(ctx: ExamContext, exam: Exam, answers: Answers) -> str:
    lines = [
        'You are a strict grader for a git "Proof-of-Understanding" exam.',
        "Use ONLY the provided context; do not run commands, read files, or assume details not present.",
        "Return ONLY a JSON object matching the provided JSON Schema.",
        "",
        "Grading rubric:",
        "- completeness: 0..1 based on how well the answer addresses the question (0 if empty).",
        "- specificity: 0..1 based on concrete references to what changed (files/functions/behaviors "
        "in the diff), not generic boilerplate.",
        "- score: 0..1 overall for the question; recommended weighting: "
        "0.45*completeness + 0.45*specificity + 0.10*category_relevance.",
        "- notes: short bullet-like strings explaining missing specifics or inaccuracies.",
        "- hallucination_flags: conservative flags for claims not supported by the diff "
        "(esp. files/modules not in changed_files).",
        "- per_question must contain exactly one entry per question id below.",
        "",
    ]
    lines += _context_block(ctx)
    lines += ["", "questions_and_answers:"]
    for q in exam.questions:
        lines.append(f"\n[id={q.id}] [category={q.category}] prompt: {q.prompt}")
        if q.is_multiple_choice:
            for i, choice in enumerate(q.choices):
                lines.append(f"  {chr(ord('A') + i)}) {choice}")
        lines.append("answer:")
        lines.append(answers.get(q.id).strip())
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def examiner_label(policy: Policy) -> str:
    return PROVIDER_CODEX_CLI if policy.provider == PROVIDER_CODEX_CLI else "local-static"


def build_examiner(policy: Policy, runner: Optional[BackendRunner] = None) -> Examiner:
    """Pick the examiner variant for this policy."""
    if policy.provider == PROVIDER_CODEX_CLI:
        if runner is not None:
            return CodexCliExaminer(runner)
        return CodexCliExaminer.from_policy(policy)
    return StaticExaminer()


__all__ = [
    "CATEGORY_KEYWORDS",
    "EXAM_PACKET_SCHEMA_VERSION",
    "PROVIDER_CODEX_CLI",
    "STATIC_QUESTIONS",
    "TRUNCATION_MARKER",
    "CodexCliExaminer",
    "ExamContext",
    "ExamPacket",
    "Examiner",
    "StaticExaminer",
    "build_examiner",
    "build_generate_exam_prompt",
    "build_judge_prompt",
    "clamp01",
    "clamp_score_payload",
    "conservative_flags",
    "examiner_label",
    "extract_file_like_tokens",
    "keyword_score",
    "parse_exam_payload",
    "parse_score_payload",
]
