"""
Git collaborator.

Thin wrapper over the git CLI: diffs, fingerprints, HEAD resolution,
commit creation, notes plumbing and hook installation. Every call runs
`git` with an explicit cwd and raises GitError on a non-zero exit.
"""
from __future__ import annotations

import os
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from aigit.errors import GitError, NotARepositoryError
from aigit.fingerprint import compute_patch_id

ALLOW_COMMIT_ENV = "AIGIT_ALLOW_COMMIT"

PRE_COMMIT_HOOK = """#!/bin/sh
set -e

if [ -z "$AIGIT_ALLOW_COMMIT" ]; then
  echo "aigit: commit blocked. Use: aigit commit"
  exit 1
fi
"""


def _run(args: Sequence[str], cwd: Optional[Path], *, input: Optional[str] = None,
         env: Optional[Dict[str, str]] = None, binary: bool = False) -> subprocess.CompletedProcess:
    # Text mode never raises on undecodable output; binary callers decode themselves.
    text_kwargs = {} if binary else {"encoding": "utf-8", "errors": "replace"}
    try:
        return subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd is not None else None,
            input=input,
            capture_output=True,
            env=env,
            **text_kwargs,
        )
    except OSError as exc:
        raise GitError(f"failed to run git: {exc}") from exc


@dataclass(frozen=True)
class GitRepo:
    workdir: Path
    git_dir: Path

    @classmethod
    def discover(cls, cwd: Optional[Path] = None) -> "GitRepo":
        """Locate the enclosing repository, or raise NotARepositoryError."""
        try:
            out = _run(["rev-parse", "--show-toplevel"], cwd)
        except GitError as exc:
            raise NotARepositoryError(f"not a git repository ({exc})") from exc
        if out.returncode != 0:
            raise NotARepositoryError("not a git repository")
        workdir = Path(out.stdout.strip())

        out = _run(["rev-parse", "--git-dir"], workdir)
        if out.returncode != 0:
            raise GitError("git rev-parse --git-dir failed")
        git_dir = Path(out.stdout.strip())
        if not git_dir.is_absolute():
            git_dir = workdir / git_dir
        return cls(workdir=workdir, git_dir=git_dir)


@dataclass(frozen=True)
class CommitMeta:
    sha: str
    author_name: str
    author_email: str
    author_date_iso: str
    subject: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "sha": self.sha,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "author_date_iso": self.author_date_iso,
            "subject": self.subject,
        }


def _lines(raw: str) -> List[str]:
    return [s.strip() for s in raw.splitlines() if s.strip()]


class Git:
    def __init__(self, repo: GitRepo):
        self.repo = repo

    def output(self, *args: str, input: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> str:
        out = _run(args, self.repo.workdir, input=input, env=env)
        if out.returncode != 0:
            raise GitError(f"git command failed: {out.stderr.strip()}")
        return out.stdout

    def output_bytes(self, *args: str) -> bytes:
        out = _run(args, self.repo.workdir, binary=True)
        if out.returncode != 0:
            raise GitError(f"git command failed: {out.stderr.decode('utf-8', 'replace').strip()}")
        return out.stdout

    # -- diffs ---------------------------------------------------------------

    def diff_staged(self) -> Tuple[str, List[str]]:
        diff = self.output("diff", "--staged", "--full-index", "--unified=0")
        files = _lines(self.output("diff", "--staged", "--name-only"))
        return diff, files

    def diff_range(self, rev_range: str) -> Tuple[str, List[str]]:
        diff = self.output("diff", "--full-index", "--unified=0", rev_range)
        files = _lines(self.output("diff", "--name-only", rev_range))
        return diff, files

    def patch_id_from_diff_text(self, diff: str) -> str:
        return compute_patch_id(diff)

    def patch_id_for_commit(self, commit: str) -> str:
        diff = self.output("show", "--pretty=format:", "--full-index", "--unified=0", commit)
        return compute_patch_id(diff)

    # -- refs ----------------------------------------------------------------

    def remote_fingerprint(self) -> Optional[str]:
        """origin URL, or None when there is no usable remote."""
        try:
            out = _run(["remote", "get-url", "origin"], self.repo.workdir)
        except GitError:
            return None
        url = out.stdout.strip() if out.returncode == 0 else ""
        return url or None

    def repo_id(self) -> str:
        return self.remote_fingerprint() or str(self.repo.workdir)

    def rev_parse_head(self) -> str:
        return self.output("rev-parse", "HEAD").strip()

    def resolve_commitish(self, commitish: str) -> str:
        return self.output("rev-parse", "--verify", f"{commitish}^{{commit}}").strip()

    def run_git_commit(self, message: Optional[str], extra_args: Sequence[str] = ()) -> None:
        args = ["commit"]
        if message is not None:
            args += ["-m", message]
        args += list(extra_args)
        env = dict(os.environ)
        env[ALLOW_COMMIT_ENV] = "1"
        # Inherit the terminal so git can open an editor when no -m is given.
        try:
            proc = subprocess.run(["git", *args], cwd=str(self.repo.workdir), env=env)
        except OSError as exc:
            raise GitError(f"failed to run git commit: {exc}") from exc
        if proc.returncode != 0:
            raise GitError("git commit failed")

    # -- notes ---------------------------------------------------------------

    def list_note_commits(self, ref: str) -> List[str]:
        """Commits that carry a note under refs/notes/<ref>."""
        out = _run(["notes", f"--ref={ref}", "list"], self.repo.workdir)
        if out.returncode != 0:
            return []
        commits = []
        for line in _lines(out.stdout):
            parts = line.split()
            if len(parts) >= 2:
                commits.append(parts[1])
        return commits

    def commit_meta(self, sha: str) -> CommitMeta:
        raw = self.output(
            "show", "-s", "--date=iso-strict",
            "--format=%H%x09%an%x09%ae%x09%ad%x09%s", sha,
        ).rstrip("\n")
        parts = raw.split("\t")
        parts += [""] * (5 - len(parts))
        return CommitMeta(
            sha=parts[0],
            author_name=parts[1],
            author_email=parts[2],
            author_date_iso=parts[3],
            subject="\t".join(parts[4:]),
        )

    # -- hooks ---------------------------------------------------------------

    def install_pre_commit_hook(self, force: bool = False) -> Path:
        hooks_dir = self.repo.git_dir / "hooks"
        hooks_dir.mkdir(parents=True, exist_ok=True)
        hook_path = hooks_dir / "pre-commit"
        if hook_path.exists() and not force:
            raise GitError(f"hook already exists at {hook_path} (use --force to overwrite)")
        hook_path.write_text(PRE_COMMIT_HOOK, encoding="utf-8")
        mode = hook_path.stat().st_mode
        hook_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return hook_path


__all__ = [
    "ALLOW_COMMIT_ENV",
    "PRE_COMMIT_HOOK",
    "CommitMeta",
    "Git",
    "GitRepo",
]
