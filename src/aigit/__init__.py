"""
aigit: Proof-of-Understanding commits for git.

- Examine a staged diff (or a commit range) with a short exam
- Grade the answers locally or through the Codex CLI
- Gate `git commit` on the decision and store the transcript in git notes
- Verify later that a commit carries a passing, fingerprint-bound transcript
  (exit 0/1/2/4: pass / error / exam failed / verification failed)
"""

__version__ = "0.1.0"

from .decision import DecisionResult, decide, evaluate
from .errors import AigitError
from .models import Answers, Decision, Exam, ExamQuestion, Score
from .policy import Policy, load_policy
from .transcript import Transcript, parse_transcript, verify_transcript

__all__ = [
    "__version__",
    "AigitError",
    "Answers",
    "Decision",
    "DecisionResult",
    "Exam",
    "ExamQuestion",
    "Policy",
    "Score",
    "Transcript",
    "decide",
    "evaluate",
    "load_policy",
    "parse_transcript",
    "verify_transcript",
]
