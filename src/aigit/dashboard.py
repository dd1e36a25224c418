"""Dashboard export and static serving.

`aigit dashboard export` collects every transcript in git notes into one
JSON document for the web dashboard. `aigit dashboard serve` serves the
built dashboard directory as a local static site.
"""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from aigit.errors import AigitError
from aigit.git import Git
from aigit.models import Answers
from aigit.store import TranscriptStore
from aigit.transcript import transcript_digest

DASHBOARD_SCHEMA_VERSION = "aigit-dashboard/0.1"


@dataclass
class DashboardExport:
    """Structured payload for the dashboard's data.json."""

    repo_id: str
    entries: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)
    schema_version: str = DASHBOARD_SCHEMA_VERSION
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.pop("skipped")
        return d


def build_export(
    git: Git,
    store: TranscriptStore,
    *,
    include_answers: bool = False,
    limit: Optional[int] = None,
    on_skip: Optional[Callable[[str, str], None]] = None,
) -> DashboardExport:
    """Collect noted commits, newest first. Unreadable entries are skipped."""
    export = DashboardExport(repo_id=str(git.repo.workdir))
    for sha in store.commits():
        try:
            meta = git.commit_meta(sha)
        except AigitError as exc:
            reason = f"failed to read commit metadata: {exc}"
            export.skipped.append({"commit": sha, "reason": reason})
            if on_skip:
                on_skip(sha, reason)
            continue
        try:
            transcript = store.load(sha)
        except AigitError as exc:
            reason = f"failed to load transcript: {exc}"
            export.skipped.append({"commit": sha, "reason": reason})
            if on_skip:
                on_skip(sha, reason)
            continue

        transcript = transcript.bind_commit(sha)
        if not include_answers:
            transcript = transcript.model_copy(update={"answers": Answers()})
        export.entries.append({
            "commit": meta.to_dict(),
            "transcript": transcript.to_dict(),
            "digest": transcript_digest(transcript),
        })

    export.entries.sort(key=lambda e: e["commit"]["author_date_iso"], reverse=True)
    if limit is not None:
        export.entries = export.entries[:limit]
    return export


def write_export(export: DashboardExport, out_path: Path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(export.to_dict(), indent=2) + "\n", encoding="utf-8")
    return out_path


# ---------------------------------------------------------------------------
# Static serving
# ---------------------------------------------------------------------------

class DashboardRequestHandler(SimpleHTTPRequestHandler):
    """GET/HEAD only, confined to the served root, never cached."""

    def end_headers(self) -> None:
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def send_head(self):
        target = Path(self.translate_path(self.path))
        try:
            resolved = target.resolve(strict=True)
        except (OSError, RuntimeError):
            self.send_error(404, "Not Found")
            return None
        root = Path(self.directory).resolve()
        if resolved != root and root not in resolved.parents:
            self.send_error(403, "Forbidden")
            return None
        return super().send_head()

    def _method_not_allowed(self) -> None:
        self.send_error(405, "Method Not Allowed")

    do_POST = _method_not_allowed
    do_PUT = _method_not_allowed
    do_DELETE = _method_not_allowed
    do_PATCH = _method_not_allowed
    do_OPTIONS = _method_not_allowed


def make_server(directory: Path, host: str, port: int) -> ThreadingHTTPServer:
    root = Path(directory).resolve(strict=True)
    if not root.is_dir():
        raise NotADirectoryError(str(root))
    handler = partial(DashboardRequestHandler, directory=os.fspath(root))
    return ThreadingHTTPServer((host, port), handler)


__all__ = [
    "DASHBOARD_SCHEMA_VERSION",
    "DashboardExport",
    "DashboardRequestHandler",
    "build_export",
    "make_server",
    "write_export",
]
