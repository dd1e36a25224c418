"""
The PoU decision pipeline.

raw diff -> redact -> ExamContext -> generate -> answers -> grade -> decide
-> assemble transcript

Each stage consumes the previous stage's complete output. Any exception
aborts the whole run: no partial exam, score, or transcript escapes. The
transcript is produced only by a completed run and is still unbound
(commit=None) when returned.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from aigit.decision import DecisionResult, evaluate
from aigit.examiner import ExamContext, Examiner
from aigit.git import Git
from aigit.models import Answers, Exam
from aigit.policy import Policy
from aigit.redact import redact_diff
from aigit.transcript import Transcript, assemble_transcript

AnswerSource = Callable[[Exam], Answers]


@dataclass(frozen=True)
class ExamRun:
    """Outcome of a completed pipeline run."""

    context: ExamContext
    exam: Exam
    answers: Answers
    result: DecisionResult
    transcript: Transcript


def build_context(git: Git, policy: Policy, diff: str, changed_files: Sequence[str]) -> ExamContext:
    """Fingerprint the raw diff, redact it, and cap it for the examiner."""
    patch_id = git.patch_id_from_diff_text(diff)
    redacted, hits = redact_diff(policy, diff)
    return ExamContext.create(
        repo_id=git.repo_id(),
        workdir=git.repo.workdir,
        diff_patch_id=patch_id,
        diff_redacted=redacted,
        changed_files=changed_files,
        redactions=hits,
        policy=policy,
    )


def run_exam(
    policy: Policy,
    ctx: ExamContext,
    examiner: Examiner,
    answer_source: AnswerSource,
    exam: Optional[Exam] = None,
) -> ExamRun:
    """Generate (unless given), collect answers, grade, decide, assemble."""
    if exam is None:
        exam = examiner.generate_exam(ctx)
    answers = answer_source(exam)
    score = examiner.grade_exam(ctx, exam, answers)
    result = evaluate(policy, exam, answers, score)
    transcript = assemble_transcript(
        policy, ctx, exam, answers, score, result.decision,
        prompt_version=examiner.prompt_version,
    )
    return ExamRun(context=ctx, exam=exam, answers=answers, result=result, transcript=transcript)


def changed_file_summary(ctx: ExamContext) -> List[str]:
    lines = [f"changed files: {', '.join(ctx.changed_files) or '(none)'}"]
    if ctx.redactions:
        lines.append("redactions: " + ", ".join(f"{h.pattern} x{h.count}" for h in ctx.redactions))
    if ctx.truncated:
        lines.append("diff truncated to context budget")
    return lines


__all__ = ["AnswerSource", "ExamRun", "build_context", "changed_file_summary", "run_exam"]
