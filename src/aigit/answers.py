"""Answer collection: structured JSON payloads or an interactive prompt."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Dict, Optional, TextIO

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from aigit.models import Answers, Exam

END_OF_ANSWER = "."


def load_answers(path: str, stdin: Optional[TextIO] = None) -> Answers:
    """Load {"answers": {...}} from a file, or from stdin when path is '-'."""
    if path == "-":
        raw = (stdin or sys.stdin).read()
    else:
        raw = Path(path).read_text(encoding="utf-8")
    try:
        return Answers.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"invalid answers payload ({path}): {exc}") from exc


def _read_until_dot(stream: TextIO) -> str:
    lines = []
    for line in stream:
        if line.strip() == END_OF_ANSWER:
            break
        lines.append(line.rstrip("\n"))
    return "\n".join(lines).rstrip()


def prompt_answers(exam: Exam, console: Console, stdin: Optional[TextIO] = None) -> Answers:
    """Ask every question in order; each answer ends with a lone '.' line."""
    stream = stdin or sys.stdin
    collected: Dict[str, str] = {}
    console.print("[bold]aigit exam:[/] answer the following questions.\n")
    for q in exam.questions:
        console.print(f"[bold cyan]--- {escape(f'[{q.category}]')}[/] {escape(q.prompt)} [bold cyan]---[/]", highlight=False)
        if q.is_multiple_choice:
            for i, choice in enumerate(q.choices):
                console.print(f"  {chr(ord('A') + i)}) {choice}", markup=False, highlight=False)
        console.print("[dim](end your answer with a single '.' on its own line)[/]\n")
        collected[q.id] = _read_until_dot(stream)
        console.print()
    return Answers(answers=collected)


__all__ = ["END_OF_ANSWER", "load_answers", "prompt_answers"]
