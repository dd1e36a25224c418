"""
Diff fingerprints ("patch ids").

A fingerprint identifies the semantic content of a diff so a transcript can
be re-bound to the commit it describes. It is stable under:
  - file order within the diff
  - whitespace changes inside added/removed lines
  - CRLF vs LF line endings
  - hunk line numbers and context lines

File mode lines always count. A section without hunks (binary or mode-only
changes) is identified by its index blob ids instead of its content.
"""
from __future__ import annotations

import hashlib
from typing import List

from pydantic import BaseModel, ConfigDict

_SECTION_HEADER = "diff --git "
_MODE_PREFIXES = ("old mode ", "new mode ", "new file mode ", "deleted file mode ")


class DiffFingerprint(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    patch_id: str


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _split_sections(diff: str) -> List[List[str]]:
    """Split unified diff text into per-file sections (header line first)."""
    sections: List[List[str]] = []
    current: List[str] = []
    for line in diff.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        if line.startswith(_SECTION_HEADER):
            if current:
                sections.append(current)
            current = [line]
        elif current:
            current.append(line)
    if current:
        sections.append(current)
    return sections


def _section_digest(section: List[str]) -> str:
    h = hashlib.sha256()
    h.update(" ".join(section[0].split()).encode("utf-8"))
    h.update(b"\n")
    blob_ids = ""
    in_hunk = False
    for line in section[1:]:
        if line.startswith("@@"):
            in_hunk = True
            continue
        if not in_hunk:
            if line.startswith(_MODE_PREFIXES):
                h.update(line.strip().encode("utf-8"))
                h.update(b"\n")
            elif line.startswith("index "):
                # "index <old>..<new>[ <mode>]"; the mode is covered above
                fields = line[len("index "):].split()
                blob_ids = fields[0] if fields else ""
            continue
        if line.startswith(("+", "-")):
            h.update(line[0].encode("utf-8"))
            h.update("".join(line[1:].split()).encode("utf-8"))
            h.update(b"\n")
    if not in_hunk and blob_ids:
        h.update(f"blobs {blob_ids}\n".encode("utf-8"))
    return h.hexdigest()


def compute_patch_id(diff: str) -> str:
    """Order- and whitespace-normalized content hash of a unified diff."""
    digests = sorted(_section_digest(s) for s in _split_sections(diff))
    return _sha256_hex("\n".join(digests).encode("utf-8"))


__all__ = ["DiffFingerprint", "compute_patch_id"]
