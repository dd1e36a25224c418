"""
Runtime schema enforcement for backend payloads and transcripts.

Schemas are bundled inside the aigit package (src/aigit/schemas/) so they
are always available in installed wheels. Validation FAILS CLOSED: if the
schemas cannot be loaded, an error is raised rather than skipping checks.

The exam and score schemas double as the --output-schema handed to the
Codex CLI backend, so the backend and the verifier agree on one contract.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import referencing
import referencing.jsonschema
from jsonschema import Draft202012Validator

_SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"

EXAM_SCHEMA = "exam.schema.json"
SCORE_SCHEMA = "score.schema.json"
TRANSCRIPT_SCHEMA = "transcript.schema.json"

_ALL = (EXAM_SCHEMA, SCORE_SCHEMA, TRANSCRIPT_SCHEMA)

_schemas: Dict[str, Dict[str, Any]] = {}
_validators: Dict[str, Draft202012Validator] = {}


def load_schema(name: str) -> Dict[str, Any]:
    """Return the parsed JSON Schema document *name* (cached)."""
    if name not in _schemas:
        path = _SCHEMA_DIR / name
        if not path.exists():
            raise FileNotFoundError(
                f"Schema file {name} not found in {_SCHEMA_DIR}. "
                f"This usually means the package was installed incorrectly."
            )
        _schemas[name] = json.loads(path.read_text(encoding="utf-8"))
    return _schemas[name]


def _validator(name: str) -> Draft202012Validator:
    if name not in _validators:
        # Registry for $ref resolution between bundled schemas
        registry = referencing.Registry().with_resources([
            (doc["$id"], referencing.Resource.from_contents(doc))
            for doc in (load_schema(n) for n in _ALL)
        ])
        _validators[name] = Draft202012Validator(load_schema(name), registry=registry)
    return _validators[name]


def validate(name: str, payload: Any) -> List[str]:
    """Validate *payload* against schema *name*.

    Returns a list of error messages (empty = valid).
    """
    errors = []
    for error in sorted(_validator(name).iter_errors(payload), key=lambda e: [str(p) for p in e.path]):
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        errors.append(f"{path}: {error.message}")
    return errors


def validate_exam(payload: Any) -> List[str]:
    return validate(EXAM_SCHEMA, payload)


def validate_score(payload: Any) -> List[str]:
    return validate(SCORE_SCHEMA, payload)


def validate_transcript(payload: Any) -> List[str]:
    return validate(TRANSCRIPT_SCHEMA, payload)


__all__ = [
    "EXAM_SCHEMA",
    "SCORE_SCHEMA",
    "TRANSCRIPT_SCHEMA",
    "load_schema",
    "validate",
    "validate_exam",
    "validate_score",
    "validate_transcript",
]
