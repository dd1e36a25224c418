"""
aigit transcript storage.

Persists one transcript per commit in git notes (refs/notes/aigit). Notes
are a side channel: they never change commit ids, and `notes add -f`
overwrites by key, so re-storing a transcript for a commit replaces it.

Serializing concurrent writers is git's job (ref locking), not ours.
"""
from __future__ import annotations

from typing import List

from aigit.errors import (
    E_TRANSCRIPT_MALFORMED,
    ConfigurationError,
    GitError,
    IntegrityError,
    TranscriptNotFoundError,
)
from aigit.git import Git
from aigit.transcript import Transcript, parse_transcript

NOTES_REF = "aigit"


class TranscriptStore:
    """Git-notes backed transcript store, keyed by commit id."""

    def __init__(self, git: Git, ref: str = NOTES_REF):
        self.git = git
        self.ref = ref

    def store(self, commit: str, transcript: Transcript) -> None:
        self.git.output("notes", f"--ref={self.ref}", "add", "-f", "-m", transcript.to_json(), commit)

    def load_raw(self, commit: str) -> str:
        try:
            raw = self.git.output_bytes("notes", f"--ref={self.ref}", "show", commit)
        except GitError as exc:
            raise TranscriptNotFoundError(f"no transcript found in git notes for {commit}") from exc
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IntegrityError(
                f"transcript note for {commit} is not valid UTF-8", code=E_TRANSCRIPT_MALFORMED,
            ) from exc

    def load(self, commit: str) -> Transcript:
        """Load and parse the transcript for *commit*.

        Raises TranscriptNotFoundError when there is no note and
        IntegrityError when the note is not a supported transcript.
        """
        return parse_transcript(self.load_raw(commit))

    def commits(self) -> List[str]:
        return self.git.list_note_commits(self.ref)


def get_store(git: Git, kind: str = "git-notes") -> TranscriptStore:
    """Resolve policy.store to a store implementation."""
    if kind != "git-notes":
        raise ConfigurationError(f"unsupported transcript store: {kind}")
    return TranscriptStore(git)


__all__ = ["NOTES_REF", "TranscriptStore", "get_store"]
