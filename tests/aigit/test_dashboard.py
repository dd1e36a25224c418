"""Tests for dashboard export and the static file server."""
from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request

import pytest
from conftest import STRONG_ANSWER, git, requires_git
from typer.testing import CliRunner

from aigit.commands import aigit_app
from aigit.dashboard import DASHBOARD_SCHEMA_VERSION, build_export, make_server
from aigit.examiner import STATIC_QUESTIONS
from aigit.git import Git, GitRepo
from aigit.store import NOTES_REF, TranscriptStore

runner = CliRunner()

STRONG_INPUT = "".join(f"{STRONG_ANSWER}\n.\n" for _ in STATIC_QUESTIONS)

# Loopback requests must not go through any configured HTTP proxy.
_open = urllib.request.build_opener(urllib.request.ProxyHandler({})).open


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


@requires_git
class TestExport:
    def _commit(self, repo, n):
        (repo / "src" / "app.py").write_text(f'print("v{n}")\n')
        git(repo, "add", "src/app.py")
        result = runner.invoke(aigit_app, ["commit", "-m", f"change {n}"], input=STRONG_INPUT)
        assert result.exit_code == 0, result.output

    def test_export_cli_writes_entries(self, git_repo):
        self._commit(git_repo, 1)
        result = runner.invoke(aigit_app, ["dashboard", "export", "--out", "out/data.json"])
        assert result.exit_code == 0, result.output

        data = json.loads((git_repo / "out" / "data.json").read_text())
        assert data["schema_version"] == DASHBOARD_SCHEMA_VERSION
        assert len(data["entries"]) == 1
        entry = data["entries"][0]
        assert entry["commit"]["subject"] == "change 1"
        assert entry["transcript"]["decision"] == "pass"
        assert entry["transcript"]["answers"] == {"answers": {}}
        assert len(entry["digest"]) == 64

    def test_include_answers(self, git_repo):
        self._commit(git_repo, 1)
        runner.invoke(aigit_app, ["dashboard", "export", "--out", "d.json", "--include-answers"])
        entry = json.loads((git_repo / "d.json").read_text())["entries"][0]
        assert entry["transcript"]["answers"]["answers"]["risk"] == STRONG_ANSWER

    def test_limit_and_order(self, git_repo, monkeypatch):
        monkeypatch.setenv("GIT_AUTHOR_DATE", "2024-01-01T00:00:00+00:00")
        self._commit(git_repo, 1)
        monkeypatch.setenv("GIT_AUTHOR_DATE", "2025-01-01T00:00:00+00:00")
        self._commit(git_repo, 2)
        repo = Git(GitRepo.discover(git_repo))
        export = build_export(repo, TranscriptStore(repo))
        assert [e["commit"]["subject"] for e in export.entries] == ["change 2", "change 1"]

        limited = runner.invoke(aigit_app, ["dashboard", "export", "--out", "d.json", "--limit", "1"])
        assert limited.exit_code == 0
        entries = json.loads((git_repo / "d.json").read_text())["entries"]
        assert [e["commit"]["subject"] for e in entries] == ["change 2"]

    def test_unreadable_note_skipped(self, git_repo):
        self._commit(git_repo, 1)
        git(git_repo, "notes", f"--ref={NOTES_REF}", "add", "-m", "garbage", "HEAD~1")
        skipped = []
        repo = Git(GitRepo.discover(git_repo))
        export = build_export(repo, TranscriptStore(repo), on_skip=lambda sha, why: skipped.append(sha))
        assert len(export.entries) == 1
        assert len(skipped) == 1
        assert "skipped" not in export.to_dict()

    def test_no_notes(self, git_repo):
        repo = Git(GitRepo.discover(git_repo))
        assert build_export(repo, TranscriptStore(repo)).entries == []


# ---------------------------------------------------------------------------
# Static server
# ---------------------------------------------------------------------------


@pytest.fixture
def served(tmp_path):
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_text("<h1>aigit</h1>")
    (tmp_path / "secret.txt").write_text("top secret")
    (root / "escape.txt").symlink_to(tmp_path / "secret.txt")

    server = make_server(root, "127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()


class TestServer:
    def test_serves_index(self, served):
        with _open(f"{served}/") as resp:
            assert resp.status == 200
            assert resp.headers["Cache-Control"] == "no-store"
            assert b"aigit" in resp.read()

    def test_missing_file(self, served):
        with pytest.raises(urllib.error.HTTPError) as exc:
            _open(f"{served}/nope.json")
        assert exc.value.code == 404

    def test_symlink_escape_forbidden(self, served):
        with pytest.raises(urllib.error.HTTPError) as exc:
            _open(f"{served}/escape.txt")
        assert exc.value.code == 403

    def test_post_not_allowed(self, served):
        req = urllib.request.Request(f"{served}/index.html", data=b"x", method="POST")
        with pytest.raises(urllib.error.HTTPError) as exc:
            _open(req)
        assert exc.value.code == 405

    def test_missing_directory(self, tmp_path):
        with pytest.raises(OSError):
            make_server(tmp_path / "absent", "127.0.0.1", 0)
