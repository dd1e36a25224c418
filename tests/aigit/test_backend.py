"""Tests for aigit.backend: bounded Codex CLI subprocess invocation."""
from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from aigit import backend as backend_mod
from aigit.backend import CodexCliRunner, split_command_line, truncate_for_error
from aigit.errors import (
    E_BACKEND_EXIT,
    E_BACKEND_OUTPUT,
    E_BACKEND_SPAWN,
    E_BACKEND_TIMEOUT,
    BackendTimeoutError,
    ConfigurationError,
    ExternalBackendError,
)
from aigit.policy import CodexCliPolicy, Policy
from aigit.schema import EXAM_SCHEMA


def _arg_after(cmd, flag):
    return cmd[cmd.index(flag) + 1]


# ---------------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------------


class TestBuildCommand:
    def test_default_command(self):
        cmd = CodexCliRunner().build_command(Path("/s.json"), Path("/o.json"))
        assert cmd == [
            "codex", "exec",
            "--color", "never",
            "--sandbox", "read-only",
            "--output-schema", "/s.json",
            "--output-last-message", "/o.json",
            "-",
        ]

    def test_npx_base_command(self):
        runner = CodexCliRunner("npx -y @openai/codex@0.93.0", profile="ci", model="o4-mini")
        cmd = runner.build_command(Path("/s"), Path("/o"))
        assert cmd[:4] == ["npx", "-y", "@openai/codex@0.93.0", "exec"]
        assert _arg_after(cmd, "--profile") == "ci"
        assert _arg_after(cmd, "--model") == "o4-mini"

    def test_exec_not_duplicated(self):
        cmd = CodexCliRunner("codex exec").build_command(Path("/s"), Path("/o"))
        assert cmd.count("exec") == 1

    def test_static_model_not_forwarded(self):
        cmd = CodexCliRunner(model="static").build_command(Path("/s"), Path("/o"))
        assert "--model" not in cmd

    def test_from_policy(self):
        policy = Policy(
            provider="codex-cli",
            model="gpt-5",
            codex_cli=CodexCliPolicy(command="my-codex", sandbox="workspace-write", timeout_secs=7),
        )
        runner = CodexCliRunner.from_policy(policy)
        assert runner.base_command == "my-codex"
        assert runner.model == "gpt-5"
        assert runner.sandbox == "workspace-write"
        assert runner.timeout_s == 7

    def test_split_rejects_empty(self):
        with pytest.raises(ConfigurationError):
            split_command_line("   ")

    def test_split_rejects_unbalanced_quotes(self):
        with pytest.raises(ConfigurationError):
            split_command_line('codex "unterminated')


def test_truncate_for_error():
    assert truncate_for_error("abc", limit=10) == "abc"
    out = truncate_for_error("x" * 20, limit=10)
    assert out.startswith("x" * 10)
    assert "truncated" in out


# ---------------------------------------------------------------------------
# Invocation (subprocess.run monkeypatched)
# ---------------------------------------------------------------------------


class TestRunJson:
    def test_success_reads_last_message_file(self, tmp_path, monkeypatch):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen["cmd"] = cmd
            seen["kwargs"] = kwargs
            schema = json.loads(Path(_arg_after(cmd, "--output-schema")).read_text())
            seen["schema_id"] = schema["$id"]
            Path(_arg_after(cmd, "--output-last-message")).write_text('{"ok": true}')
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        monkeypatch.setattr(backend_mod.subprocess, "run", fake_run)
        out = CodexCliRunner(timeout_s=5).run_json(tmp_path, "the prompt", EXAM_SCHEMA)

        assert json.loads(out) == {"ok": True}
        assert seen["kwargs"]["input"] == "the prompt"
        assert seen["kwargs"]["timeout"] == 5
        assert seen["kwargs"]["cwd"] == str(tmp_path)
        assert seen["kwargs"]["env"]["NO_COLOR"] == "1"
        assert seen["schema_id"].endswith("exam.schema.json")
        assert "the prompt" not in seen["cmd"]

    def test_timeout(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(backend_mod.subprocess, "run", fake_run)
        with pytest.raises(BackendTimeoutError) as exc:
            CodexCliRunner(timeout_s=2).run_json(tmp_path, "p", EXAM_SCHEMA)
        assert exc.value.code == E_BACKEND_TIMEOUT
        assert "timed out after 2s" in exc.value.message

    def test_spawn_failure(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(backend_mod.subprocess, "run", fake_run)
        with pytest.raises(ExternalBackendError) as exc:
            CodexCliRunner("no-such-codex").run_json(tmp_path, "p", EXAM_SCHEMA)
        assert exc.value.code == E_BACKEND_SPAWN
        assert "codex_cli.command" in exc.value.message

    def test_nonzero_exit(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 3, stdout="out", stderr="boom")

        monkeypatch.setattr(backend_mod.subprocess, "run", fake_run)
        with pytest.raises(ExternalBackendError) as exc:
            CodexCliRunner().run_json(tmp_path, "p", EXAM_SCHEMA)
        assert exc.value.code == E_BACKEND_EXIT
        assert "exit=3" in exc.value.message
        assert "ms)" in exc.value.message
        assert "boom" in exc.value.message

    def test_missing_output_file(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        monkeypatch.setattr(backend_mod.subprocess, "run", fake_run)
        with pytest.raises(ExternalBackendError) as exc:
            CodexCliRunner().run_json(tmp_path, "p", EXAM_SCHEMA)
        assert exc.value.code == E_BACKEND_OUTPUT
