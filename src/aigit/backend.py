"""
Codex CLI backend: bounded subprocess for exam generation and grading.

Treats the external process as untrusted I/O:
- The prompt goes over stdin (never on the command line)
- The output shape is pinned with --output-schema (bundled JSON Schema)
- The answer is read from --output-last-message, not scraped from stdout
- A hard timeout kills and reaps the child; no call can hang the commit

Usage:
    runner = CodexCliRunner.from_policy(policy)
    raw = runner.run_json(workdir, prompt, EXAM_SCHEMA)
"""
from __future__ import annotations

import json
import os
import shlex
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from aigit.errors import (
    E_BACKEND_EXIT,
    E_BACKEND_OUTPUT,
    E_BACKEND_SPAWN,
    BackendTimeoutError,
    ConfigurationError,
    ExternalBackendError,
)
from aigit.policy import (
    DEFAULT_CODEX_COMMAND,
    DEFAULT_CODEX_SANDBOX,
    DEFAULT_CODEX_TIMEOUT_SECS,
    Policy,
)
from aigit.schema import load_schema

NPX_OPENAI_DOWNLOAD = "npx -y @openai/codex@0.93.0"
MAX_ERROR_OUTPUT = 8000


@runtime_checkable
class BackendRunner(Protocol):
    """Seam for swapping the backend invocation (subprocess / fake in tests)."""

    def run_json(self, cwd: Path, prompt: str, schema_name: str) -> str: ...


@dataclass(frozen=True)
class InvokeResult:
    """Captured result of one backend process run."""

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: float


def truncate_for_error(text: str, limit: int = MAX_ERROR_OUTPUT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n[aigit: output truncated]\n"


def split_command_line(command: str) -> Tuple[str, List[str]]:
    try:
        parts = shlex.split(command)
    except ValueError as exc:
        raise ConfigurationError(f"invalid base command: {command}") from exc
    if not parts:
        raise ConfigurationError("base command is empty")
    return parts[0], parts[1:]


class CodexCliRunner:
    """Invoke `codex exec` with a JSON Schema-constrained final message."""

    def __init__(
        self,
        base_command: str = DEFAULT_CODEX_COMMAND,
        *,
        profile: Optional[str] = None,
        model: Optional[str] = None,
        sandbox: str = DEFAULT_CODEX_SANDBOX,
        timeout_s: float = DEFAULT_CODEX_TIMEOUT_SECS,
    ):
        self.base_command = base_command
        self.profile = profile
        self.model = model
        self.sandbox = sandbox
        self.timeout_s = timeout_s

    @classmethod
    def from_policy(cls, policy: Policy) -> "CodexCliRunner":
        cfg = policy.codex_cli
        return cls(
            cfg.command or DEFAULT_CODEX_COMMAND,
            profile=cfg.profile,
            model=cfg.model or policy.model,
            sandbox=cfg.sandbox or DEFAULT_CODEX_SANDBOX,
            timeout_s=cfg.timeout_secs if cfg.timeout_secs is not None else DEFAULT_CODEX_TIMEOUT_SECS,
        )

    def build_command(self, schema_path: Path, output_path: Path) -> List[str]:
        program, args = split_command_line(self.base_command)
        # The user may already have included the subcommand.
        if "exec" not in args:
            args.append("exec")
        if self.profile:
            args += ["--profile", self.profile]
        if self.model and self.model != "static":
            args += ["--model", self.model]
        args += [
            "--color", "never",
            "--sandbox", self.sandbox,
            "--output-schema", str(schema_path),
            "--output-last-message", str(output_path),
            "-",
        ]
        return [program, *args]

    def run_json(self, cwd: Path, prompt: str, schema_name: str) -> str:
        """Run the backend once and return the raw JSON text it wrote.

        Raises BackendTimeoutError on deadline, ExternalBackendError on
        spawn failure, non-zero exit, or missing output.
        """
        with tempfile.TemporaryDirectory(prefix="aigit-codex-") as tmp:
            schema_path = Path(tmp) / "aigit-codex.schema.json"
            output_path = Path(tmp) / "aigit-codex.output.json"
            schema_path.write_text(json.dumps(load_schema(schema_name), indent=2), encoding="utf-8")

            cmd = self.build_command(schema_path, output_path)
            result = self._invoke(cmd, prompt, cwd)

            if result.exit_code != 0:
                raise ExternalBackendError(
                    f"codex exec failed (exit={result.exit_code} after {result.duration_ms:.0f}ms)\n"
                    f"stdout:\n{truncate_for_error(result.stdout)}\n"
                    f"stderr:\n{truncate_for_error(result.stderr)}",
                    code=E_BACKEND_EXIT,
                )
            try:
                return output_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ExternalBackendError(
                    f"codex exec did not write {output_path}",
                    code=E_BACKEND_OUTPUT,
                ) from exc

    def _invoke(self, cmd: List[str], prompt: str, cwd: Path) -> InvokeResult:
        start = time.time()
        try:
            # subprocess.run kills and reaps the child when the timeout fires.
            proc = subprocess.run(
                cmd,
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                cwd=str(cwd),
                env=self._env(),
            )
        except subprocess.TimeoutExpired as exc:
            raise BackendTimeoutError(f"codex exec timed out after {self.timeout_s:g}s") from exc
        except OSError as exc:
            raise ExternalBackendError(
                f"failed to spawn Codex CLI: {' '.join(cmd)} ({exc}) "
                f"(hint: set `codex_cli.command` in .aigit.toml, e.g. \"{NPX_OPENAI_DOWNLOAD}\")",
                code=E_BACKEND_SPAWN,
            ) from exc
        return InvokeResult(
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=(time.time() - start) * 1000.0,
        )

    @staticmethod
    def _env() -> Dict[str, str]:
        env = dict(os.environ)
        env["NO_COLOR"] = "1"
        env["RUST_LOG"] = "error"
        return env


__all__ = [
    "NPX_OPENAI_DOWNLOAD",
    "BackendRunner",
    "CodexCliRunner",
    "InvokeResult",
    "split_command_line",
    "truncate_for_error",
]
