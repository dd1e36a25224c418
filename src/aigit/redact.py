"""
Diff redaction.

Strips key material and tokens from diff text before it is shown to an
examiner backend or stored in an exam packet. Pure: no I/O.

Built-in patterns run first, in declaration order, followed by the
policy's own patterns (policy_redaction_0, policy_redaction_1, ...).
Every match becomes PLACEHOLDER; one RedactionHit is reported per pattern
that matched at least once.
"""
from __future__ import annotations

import re
from typing import List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from aigit.errors import E_REDACTION_PATTERN, ConfigurationError
from aigit.policy import Policy

PLACEHOLDER = "[REDACTED]"

# (name, regex). Order matters: the private key block must be consumed
# before the token patterns see its body.
BUILTIN_PATTERNS: Tuple[Tuple[str, str], ...] = (
    ("private_key_block", r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
    ("aws_access_key_id", r"AKIA[0-9A-Z]{16}"),
    ("github_pat", r"ghp_[A-Za-z0-9]{20,}"),
    ("bearer_token", r"(?i)bearer\s+[A-Za-z0-9\-._=]+"),
)


class RedactionHit(BaseModel):
    """One pattern that fired, and how often."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str
    count: int


def compile_redaction_patterns(extra: Sequence[str] = ()) -> List[Tuple[str, "re.Pattern[str]"]]:
    """Compile built-in plus policy patterns.

    Raises ConfigurationError naming the first invalid policy pattern.
    """
    compiled = [(name, re.compile(rx)) for name, rx in BUILTIN_PATTERNS]
    for i, rx in enumerate(extra):
        try:
            compiled.append((f"policy_redaction_{i}", re.compile(rx)))
        except re.error as exc:
            raise ConfigurationError(
                f"invalid redaction pattern #{i} ({rx!r}): {exc}",
                code=E_REDACTION_PATTERN,
            ) from exc
    return compiled


def redact_diff(policy: Policy, diff: str) -> Tuple[str, List[RedactionHit]]:
    """Return (sanitized diff, hits in application order)."""
    patterns = compile_redaction_patterns(policy.redactions)

    redacted = diff
    hits: List[RedactionHit] = []
    for name, rx in patterns:
        redacted, count = rx.subn(PLACEHOLDER, redacted)
        if count > 0:
            hits.append(RedactionHit(pattern=name, count=count))
    return redacted, hits


__all__ = [
    "BUILTIN_PATTERNS",
    "PLACEHOLDER",
    "RedactionHit",
    "compile_redaction_patterns",
    "redact_diff",
]
