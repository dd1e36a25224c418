"""
Repository policy for aigit (.aigit.toml).

The policy freezes the pass/fail thresholds and examiner selection for a
repository. It is loaded once per invocation and passed explicitly to every
component that needs it; nothing reads it from ambient state.

Absent file => documented defaults:
  min_total_score          0.75
  required_categories      risk, rollback, testing
  max_hallucination_flags  0
  max_tokens_context       4096 (x4 chars per token)

Usage:
  aigit policy validate
  aigit config set min_total_score 0.8
"""
from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import tomli_w

from aigit.errors import E_CONFIG_KEY, ConfigurationError

POLICY_FILENAME = ".aigit.toml"

DEFAULT_MIN_TOTAL_SCORE = 0.75
DEFAULT_REQUIRED_CATEGORIES: Tuple[str, ...] = ("risk", "rollback", "testing")
DEFAULT_MAX_TOKENS_CONTEXT = 4096
CHARS_PER_TOKEN = 4

DEFAULT_PROVIDER = "local"
DEFAULT_MODEL = "static"
DEFAULT_EXAM_MODE = "tui"
DEFAULT_STORE = "git-notes"

DEFAULT_CODEX_COMMAND = "codex"
DEFAULT_CODEX_SANDBOX = "read-only"
DEFAULT_CODEX_TIMEOUT_SECS = 120

SETTABLE_KEYS = (
    "min_total_score",
    "max_hallucination_flags",
    "exam_mode",
    "provider",
    "model",
    "store",
)


@dataclass(frozen=True)
class CodexCliPolicy:
    """Settings used when provider = "codex-cli"."""

    # Base command without subcommand, e.g. "codex" or "npx -y @openai/codex@0.93.0"
    command: Optional[str] = None
    profile: Optional[str] = None
    model: Optional[str] = None
    sandbox: Optional[str] = None
    timeout_secs: Optional[int] = None


@dataclass(frozen=True)
class Hooks:
    enforce: Optional[bool] = None


@dataclass(frozen=True)
class Policy:
    """Immutable policy value. Construct via load_policy() or Policy()."""

    min_total_score: float = DEFAULT_MIN_TOTAL_SCORE
    required_categories: Tuple[str, ...] = DEFAULT_REQUIRED_CATEGORIES
    max_hallucination_flags: int = 0

    provider: Optional[str] = DEFAULT_PROVIDER
    model: Optional[str] = DEFAULT_MODEL
    exam_mode: Optional[str] = DEFAULT_EXAM_MODE
    store: Optional[str] = DEFAULT_STORE

    redactions: Tuple[str, ...] = ()
    max_tokens_context: Optional[int] = DEFAULT_MAX_TOKENS_CONTEXT

    hooks: Hooks = field(default_factory=Hooks)
    codex_cli: CodexCliPolicy = field(default_factory=CodexCliPolicy)

    # Unknown top-level keys, preserved on rewrite.
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def max_context_chars(self) -> int:
        """Deterministic token->chars estimate (4 chars per token)."""
        tokens = self.max_tokens_context if self.max_tokens_context is not None else DEFAULT_MAX_TOKENS_CONTEXT
        return tokens * CHARS_PER_TOKEN

    def with_defaults(self) -> "Policy":
        """Fill zero/empty/unset fields with the documented defaults."""
        return replace(
            self,
            min_total_score=self.min_total_score or DEFAULT_MIN_TOTAL_SCORE,
            required_categories=self.required_categories or DEFAULT_REQUIRED_CATEGORIES,
            max_tokens_context=(
                self.max_tokens_context if self.max_tokens_context is not None else DEFAULT_MAX_TOKENS_CONTEXT
            ),
            provider=self.provider if self.provider is not None else DEFAULT_PROVIDER,
            model=self.model if self.model is not None else DEFAULT_MODEL,
            exam_mode=self.exam_mode if self.exam_mode is not None else DEFAULT_EXAM_MODE,
            store=self.store if self.store is not None else DEFAULT_STORE,
        )

    def set_key(self, key: str, value: str) -> "Policy":
        """Return a copy with one scalar key updated from its string form."""
        if key not in SETTABLE_KEYS:
            raise ConfigurationError(
                f"unsupported key: {key} (settable: {', '.join(SETTABLE_KEYS)})", code=E_CONFIG_KEY,
            )
        if key == "min_total_score":
            try:
                return replace(self, min_total_score=float(value))
            except ValueError:
                raise ConfigurationError("min_total_score must be a number", code=E_CONFIG_KEY) from None
        if key == "max_hallucination_flags":
            try:
                parsed = int(value)
            except ValueError:
                parsed = -1
            if parsed < 0:
                raise ConfigurationError("max_hallucination_flags must be an integer", code=E_CONFIG_KEY)
            return replace(self, max_hallucination_flags=parsed)
        return replace(self, **{key: value})

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        extra = data.pop("extra")
        data["required_categories"] = list(self.required_categories)
        data["redactions"] = list(self.redactions)
        data.update(extra)
        return data

    def to_toml_string(self) -> str:
        return tomli_w.dumps(_drop_none(self.to_dict()))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def policy_path(workdir: Path) -> Path:
    return Path(workdir) / POLICY_FILENAME


def load_policy(workdir: Path) -> Policy:
    """Load .aigit.toml from a repository root, or defaults if absent.

    Raises ConfigurationError for unreadable TOML or wrongly typed fields.
    """
    path = policy_path(workdir)
    if not path.exists():
        return Policy()
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"failed to parse {path}: {exc}") from exc
    return policy_from_mapping(raw, source=str(path)).with_defaults()


def policy_from_mapping(raw: Dict[str, Any], *, source: str = "<policy>") -> Policy:
    """Build a Policy from a decoded TOML table (no defaulting)."""
    data = dict(raw)
    hooks_raw = _table(data.pop("hooks", {}), "hooks", source)
    codex_raw = _table(data.pop("codex_cli", {}), "codex_cli", source)

    known = {
        "min_total_score",
        "required_categories",
        "max_hallucination_flags",
        "provider",
        "model",
        "exam_mode",
        "store",
        "redactions",
        "max_tokens_context",
    }
    extra = {k: v for k, v in data.items() if k not in known}

    max_flags = _int(data.get("max_hallucination_flags", 0), "max_hallucination_flags", source)
    if max_flags is None or max_flags < 0:
        raise ConfigurationError(f"{source}: max_hallucination_flags must be a non-negative integer")

    return Policy(
        min_total_score=_float(data.get("min_total_score", 0.0), "min_total_score", source),
        required_categories=tuple(_str_list(data.get("required_categories", []), "required_categories", source)),
        max_hallucination_flags=max_flags,
        provider=_opt_str(data.get("provider"), "provider", source),
        model=_opt_str(data.get("model"), "model", source),
        exam_mode=_opt_str(data.get("exam_mode"), "exam_mode", source),
        store=_opt_str(data.get("store"), "store", source),
        redactions=tuple(_str_list(data.get("redactions", []), "redactions", source)),
        max_tokens_context=_int(data.get("max_tokens_context"), "max_tokens_context", source),
        hooks=Hooks(enforce=_opt_bool(hooks_raw.get("enforce"), "hooks.enforce", source)),
        codex_cli=CodexCliPolicy(
            command=_opt_str(codex_raw.get("command"), "codex_cli.command", source),
            profile=_opt_str(codex_raw.get("profile"), "codex_cli.profile", source),
            model=_opt_str(codex_raw.get("model"), "codex_cli.model", source),
            sandbox=_opt_str(codex_raw.get("sandbox"), "codex_cli.sandbox", source),
            timeout_secs=_int(codex_raw.get("timeout_secs"), "codex_cli.timeout_secs", source),
        ),
        extra=extra,
    )


def save_policy(workdir: Path, policy: Policy) -> Path:
    path = policy_path(workdir)
    path.write_text(policy.to_toml_string(), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def _table(value: Any, name: str, source: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigurationError(f"{source}: [{name}] must be a table")
    return value


def _float(value: Any, name: str, source: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{source}: {name} must be a number")
    return float(value)


def _int(value: Any, name: str, source: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{source}: {name} must be an integer")
    return value


def _opt_str(value: Any, name: str, source: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"{source}: {name} must be a string")
    return value


def _opt_bool(value: Any, name: str, source: str) -> Optional[bool]:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigurationError(f"{source}: {name} must be a boolean")
    return value


def _str_list(value: Any, name: str, source: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"{source}: {name} must be a list of strings")
    return list(value)


def _drop_none(obj: Any) -> Any:
    """TOML has no null: omit unset keys."""
    if isinstance(obj, dict):
        return {k: _drop_none(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, (list, tuple)):
        return [_drop_none(v) for v in obj]
    return obj


__all__ = [
    "CHARS_PER_TOKEN",
    "CodexCliPolicy",
    "Hooks",
    "POLICY_FILENAME",
    "Policy",
    "SETTABLE_KEYS",
    "load_policy",
    "policy_from_mapping",
    "policy_path",
    "save_policy",
]
