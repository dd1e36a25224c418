"""Shared fixtures for aigit tests."""
from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Sequence

import pytest

from aigit.examiner import ExamContext
from aigit.policy import Policy

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

SAMPLE_DIFF = """diff --git a/src/app.py b/src/app.py
index 3b18e51..a9c1f2d 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1 +1,2 @@
-print("hello")
+print("hello, world")
+print("bye")
"""


def make_context(
    diff: str = SAMPLE_DIFF,
    changed_files: Sequence[str] = ("src/app.py",),
    policy: Policy = None,
    workdir: Path = Path("."),
) -> ExamContext:
    return ExamContext.create(
        repo_id="git@example.com:acme/widgets.git",
        workdir=workdir,
        diff_patch_id="0" * 64,
        diff_redacted=diff,
        changed_files=changed_files,
        redactions=[],
        policy=policy or Policy(),
    )


# An answer that names the changed file and hits two keywords for every
# static category, so the static grader gives it 1.0.
STRONG_ANSWER = (
    "src/app.py changes the greeting module. The risk is that a caller may break or fail on the new "
    "output; a unit test and integration test cover it. To rollback we revert the commit or use a "
    "feature flag. No auth or token or secret handling is involved in this file."
)


def git(cwd: Path, *args: str) -> str:
    out = subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True, check=True)
    return out.stdout


@pytest.fixture
def git_repo(tmp_path, monkeypatch) -> Path:
    """A repository with one base commit and a staged change to src/app.py."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var, value in (
        ("GIT_AUTHOR_NAME", "Test Author"),
        ("GIT_AUTHOR_EMAIL", "author@example.com"),
        ("GIT_COMMITTER_NAME", "Test Author"),
        ("GIT_COMMITTER_EMAIL", "author@example.com"),
    ):
        monkeypatch.setenv(var, value)
    monkeypatch.delenv("AIGIT_ALLOW_COMMIT", raising=False)

    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    (repo / "src").mkdir()
    (repo / "src" / "app.py").write_text('print("hello")\n', encoding="utf-8")
    git(repo, "add", "src/app.py")
    git(repo, "commit", "-q", "-m", "base")

    (repo / "src" / "app.py").write_text('print("hello, world")\nprint("bye")\n', encoding="utf-8")
    git(repo, "add", "src/app.py")
    monkeypatch.chdir(repo)
    return repo
