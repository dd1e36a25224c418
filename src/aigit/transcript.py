"""
PoU transcripts: assembly, parsing and verification.

A transcript binds one diff fingerprint to the exam, answers, score and
decision produced for it, together with the thresholds in force at grading
time. It is attached to exactly one commit and never edited afterwards.

Verification is recomputation-free: it re-runs only the decision predicate
against the transcript's stored score/exam/answers and the CURRENT policy.
It never re-grades, so it works without the grading backend, and a
transcript that passed under a looser policy fails once policy tightens.

Binding checks (commit id, live diff fingerprint) belong to the caller and
are provided by check_binding().
"""
from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aigit.canonical import sha256_digest
from aigit.decision import evaluate, thresholds_of
from aigit.errors import (
    E_COMMIT_MISMATCH,
    E_FINGERPRINT_MISMATCH,
    E_SCHEMA_UNKNOWN,
    E_TRANSCRIPT_MALFORMED,
    IntegrityError,
)
from aigit.examiner import ExamContext
from aigit.fingerprint import DiffFingerprint
from aigit.models import (
    Answers,
    Decision,
    Exam,
    PolicyThresholds,
    ProviderMetadata,
    Score,
)
from aigit.policy import DEFAULT_MODEL, DEFAULT_PROVIDER, Policy
from aigit.redact import RedactionHit
from aigit.schema import validate_transcript

TRANSCRIPT_SCHEMA_VERSION = "aigit-transcript/0.1"


class Transcript(BaseModel):
    """Persisted, self-describing record of one exam cycle."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    schema_version: str = TRANSCRIPT_SCHEMA_VERSION
    commit: Optional[str] = None
    timestamp: datetime
    repo_id: str
    repo_fingerprint: str
    diff_fingerprint: DiffFingerprint
    exam: Exam
    answers: Answers
    score: Score
    decision: Decision
    thresholds: PolicyThresholds
    provider: ProviderMetadata
    redactions: List[RedactionHit] = Field(default_factory=list)

    def bind_commit(self, commit: str) -> "Transcript":
        """Return a copy bound to *commit* (done once, after the commit exists)."""
        return self.model_copy(update={"commit": commit})

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


def fingerprint_repo(repo_id: str) -> str:
    """One-way hash of the repository identifier (sha256 hex)."""
    return hashlib.sha256(repo_id.encode("utf-8")).hexdigest()


def assemble_transcript(
    policy: Policy,
    ctx: ExamContext,
    exam: Exam,
    answers: Answers,
    score: Score,
    decision: Decision,
    *,
    prompt_version: str,
    now: Optional[datetime] = None,
) -> Transcript:
    """Bind one completed pipeline run into a transcript (commit unset)."""
    return Transcript(
        timestamp=now or datetime.now(timezone.utc),
        repo_id=ctx.repo_id,
        repo_fingerprint=fingerprint_repo(ctx.repo_id),
        diff_fingerprint=DiffFingerprint(patch_id=ctx.diff_patch_id),
        exam=exam,
        answers=answers,
        score=score,
        decision=decision,
        thresholds=thresholds_of(policy),
        provider=ProviderMetadata(
            provider=policy.provider or DEFAULT_PROVIDER,
            model=policy.model or DEFAULT_MODEL,
            prompt_version=prompt_version,
        ),
        redactions=list(ctx.redactions),
    )


def verify_transcript(transcript: Transcript, policy: Union[Policy, PolicyThresholds]) -> bool:
    """True iff the stored decision is PASS and still passes under *policy*."""
    if transcript.decision is not Decision.PASS:
        return False
    return evaluate(policy, transcript.exam, transcript.answers, transcript.score).passed


def verification_reasons(transcript: Transcript, policy: Union[Policy, PolicyThresholds]) -> List[str]:
    """Why verify_transcript() would fail (empty list when it passes)."""
    reasons: List[str] = []
    if transcript.decision is not Decision.PASS:
        reasons.append("recorded_decision_fail")
    reasons += evaluate(policy, transcript.exam, transcript.answers, transcript.score).reasons
    return reasons


def parse_transcript(raw: Union[str, bytes, dict]) -> Transcript:
    """Parse transcript JSON. Unknown schema versions are rejected."""
    if isinstance(raw, dict):
        data: Any = raw
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise IntegrityError(f"failed to parse transcript JSON: {exc}", code=E_TRANSCRIPT_MALFORMED) from exc

    if not isinstance(data, dict):
        raise IntegrityError("transcript is not a JSON object", code=E_TRANSCRIPT_MALFORMED)

    version = data.get("schema_version")
    if version != TRANSCRIPT_SCHEMA_VERSION:
        raise IntegrityError(f"unsupported transcript schema {version}", code=E_SCHEMA_UNKNOWN)

    errors = validate_transcript(data)
    if errors:
        raise IntegrityError(
            f"transcript does not match its schema: {'; '.join(errors[:5])}", code=E_TRANSCRIPT_MALFORMED,
        )

    try:
        return Transcript.model_validate(data)
    except ValidationError as exc:
        raise IntegrityError(f"malformed transcript: {exc}", code=E_TRANSCRIPT_MALFORMED) from exc


def check_binding(transcript: Transcript, commit: str, live_patch_id: str) -> None:
    """Raise IntegrityError unless the transcript describes *commit*'s diff."""
    if transcript.commit is not None and transcript.commit != commit:
        raise IntegrityError(
            f"transcript commit mismatch (transcript={transcript.commit}, checked={commit})",
            code=E_COMMIT_MISMATCH,
        )
    if transcript.diff_fingerprint.patch_id != live_patch_id:
        raise IntegrityError("diff fingerprint mismatch", code=E_FINGERPRINT_MISMATCH)


def transcript_digest(transcript: Transcript) -> str:
    """sha256 over the canonical JSON form (stable across pretty-printing)."""
    return sha256_digest(transcript.to_dict())


def format_result(transcript: Transcript) -> List[str]:
    """Human-readable summary lines for a graded transcript."""
    score = transcript.score.total_score
    if transcript.decision is Decision.PASS:
        return [f"aigit: PASS (score {score:.2f})"]
    lines = [f"aigit: FAIL (score {score:.2f})"]
    if transcript.score.hallucination_flags:
        lines.append("aigit: hallucination flags:")
        lines += [f"  - {f}" for f in transcript.score.hallucination_flags]
    return lines


__all__ = [
    "TRANSCRIPT_SCHEMA_VERSION",
    "Transcript",
    "assemble_transcript",
    "check_binding",
    "fingerprint_repo",
    "format_result",
    "parse_transcript",
    "transcript_digest",
    "verification_reasons",
    "verify_transcript",
]
