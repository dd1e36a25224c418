"""
aigit CLI commands: Proof-of-Understanding commit protocol for git.

Commands:
  aigit exam              - Run a PoU exam over changes (default: staged diff)
  aigit commit            - Run the exam, then `git commit` if it passes
  aigit verify            - Verify that a commit carries a valid PoU transcript
  aigit install-hook      - Install a git hook that enforces `aigit commit`
  aigit policy validate   - Load and check .aigit.toml
  aigit config set        - Update one policy key in .aigit.toml
  aigit dashboard export  - Export transcripts from git notes for the web UI
  aigit dashboard serve   - Serve the dashboard as a local static site
  aigit version           - Show version info

Exit codes (public contract):
  0 = pass / success
  1 = unexpected error, or not a git repository
  2 = exam or commit decision was FAIL
  4 = verification failed, or transcript unreadable / not stored
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from aigit.errors import AigitError, GitError, IntegrityError, NotARepositoryError

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAIL = 2
EXIT_VERIFY_FAILED = 4

aigit_app = typer.Typer(
    name="aigit",
    help="Proof-of-Understanding commit protocol for git",
    no_args_is_help=True,
)
policy_app = typer.Typer(help="Policy utilities", no_args_is_help=True)
config_app = typer.Typer(help="Config utilities", no_args_is_help=True)
dashboard_app = typer.Typer(help="Dashboard utilities (export transcripts for the web UI)", no_args_is_help=True)
aigit_app.add_typer(policy_app, name="policy")
aigit_app.add_typer(config_app, name="config")
aigit_app.add_typer(dashboard_app, name="dashboard")


class ExamFormat(str, Enum):
    tui = "tui"
    json = "json"


class HookMode(str, Enum):
    pre_commit = "pre-commit"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@aigit_app.callback()
def _main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output (stderr)"),
):
    ctx.obj = {"verbose": verbose}


def _verbose(ctx: typer.Context) -> bool:
    root = ctx.find_root()
    return bool((root.obj or {}).get("verbose"))


def _note(message: str) -> None:
    err_console.print(f"aigit: {escape(message)}", highlight=False)


def _die(message: str, code: int = EXIT_ERROR) -> NoReturn:
    err_console.print(f"[red]aigit:[/] {escape(message)}", highlight=False)
    raise typer.Exit(code)


def _output_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _open_repo():
    from aigit.git import Git, GitRepo

    try:
        return Git(GitRepo.discover(Path.cwd()))
    except NotARepositoryError:
        _die("not a git repository")


def _load_policy(git, verbose: bool):
    from aigit.examiner import examiner_label
    from aigit.policy import load_policy, policy_path

    policy = load_policy(git.repo.workdir)
    if verbose:
        path = policy_path(git.repo.workdir)
        state = "present" if path.exists() else "missing (using defaults)"
        _note(f"policy file: {path} ({state})")
        _note(f"provider: {policy.provider}")
        _note(f"examiner: {examiner_label(policy)}")
    return policy


def _print_result(run, verbose: bool) -> None:
    from aigit.transcript import format_result

    for line in format_result(run.transcript):
        color = "green" if run.result.passed else "red"
        err_console.print(f"[{color}]{escape(line)}[/]", highlight=False)
    if verbose:
        for reason in run.result.reasons:
            _note(f"reason: {reason}")


def _decision_exit(run) -> int:
    return EXIT_OK if run.result.passed else EXIT_FAIL


# ---------------------------------------------------------------------------
# exam
# ---------------------------------------------------------------------------

@aigit_app.command("exam")
def exam_cmd(
    ctx: typer.Context,
    staged: bool = typer.Option(False, "--staged", help="Use staged changes (default when no range is provided)"),
    rev_range: Optional[str] = typer.Option(None, "--range", help="Diff range, e.g. HEAD~1..HEAD"),
    fmt: Optional[ExamFormat] = typer.Option(None, "--format", help="Output format (default: policy exam_mode)"),
    answers_path: Optional[str] = typer.Option(
        None, "--answers", help="Answers JSON path, or '-' for stdin (only used with --format json)",
    ),
):
    """Run a PoU exam over changes (default: staged diff)."""
    from aigit.answers import load_answers, prompt_answers
    from aigit.examiner import ExamPacket, build_examiner
    from aigit.pipeline import build_context, changed_file_summary, run_exam

    verbose = _verbose(ctx)
    if staged and rev_range:
        _die("--staged and --range are mutually exclusive")

    git = _open_repo()
    try:
        policy = _load_policy(git, verbose)
        if fmt is None:
            fmt = ExamFormat.json if policy.exam_mode == "json" else ExamFormat.tui

        diff, changed_files = git.diff_range(rev_range) if rev_range else git.diff_staged()
        if not diff.strip():
            _die("no changes to examine (diff is empty)")

        exam_ctx = build_context(git, policy, diff, changed_files)
        examiner = build_examiner(policy)
        exam = examiner.generate_exam(exam_ctx)
        if verbose:
            for line in changed_file_summary(exam_ctx):
                _note(line)

        if fmt is ExamFormat.json:
            if answers_path is None:
                _output_json(ExamPacket.from_context(exam_ctx, exam).model_dump(mode="json"))
                raise typer.Exit(EXIT_OK)
            answers = load_answers(answers_path)
            run = run_exam(policy, exam_ctx, examiner, lambda _exam: answers, exam=exam)
            _output_json(run.transcript.to_dict())
            raise typer.Exit(_decision_exit(run))

        run = run_exam(policy, exam_ctx, examiner, lambda e: prompt_answers(e, err_console), exam=exam)
        _print_result(run, verbose)
        raise typer.Exit(_decision_exit(run))
    except (AigitError, ValueError, OSError) as exc:
        _die(str(exc))


# ---------------------------------------------------------------------------
# commit
# ---------------------------------------------------------------------------

@aigit_app.command("commit")
def commit_cmd(
    ctx: typer.Context,
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message (like `git commit -m`)"),
    git_args: Optional[List[str]] = typer.Argument(None, help="Pass-through args to `git commit` after `--`"),
):
    """Run PoU exam then delegate to `git commit` if passed."""
    from aigit.answers import prompt_answers
    from aigit.examiner import build_examiner
    from aigit.pipeline import build_context, changed_file_summary, run_exam
    from aigit.store import get_store

    verbose = _verbose(ctx)
    git = _open_repo()
    try:
        policy = _load_policy(git, verbose)
        store = get_store(git, policy.store or "git-notes")

        diff, changed_files = git.diff_staged()
        if not diff.strip():
            _die("no staged changes to commit")

        exam_ctx = build_context(git, policy, diff, changed_files)
        if verbose:
            for line in changed_file_summary(exam_ctx):
                _note(line)
        examiner = build_examiner(policy)
        run = run_exam(policy, exam_ctx, examiner, lambda e: prompt_answers(e, err_console))
        if verbose:
            _note(f"exam decision: {run.result.decision.value}")
        _print_result(run, verbose)
        if not run.result.passed:
            raise typer.Exit(EXIT_FAIL)

        try:
            head_before: Optional[str] = git.rev_parse_head()
        except GitError:
            head_before = None  # unborn branch
        git.run_git_commit(message, git_args or [])
        head_after = git.rev_parse_head()
        if head_before == head_after:
            _die("git commit did not create a new commit")
    except (AigitError, ValueError, OSError) as exc:
        _die(str(exc))

    transcript = run.transcript.bind_commit(head_after)
    try:
        store.store(head_after, transcript)
    except AigitError as exc:
        _die(f"failed to store transcript: {exc}", EXIT_VERIFY_FAILED)
    _note(f"stored transcript in git notes for {head_after}")
    raise typer.Exit(EXIT_OK)


# ---------------------------------------------------------------------------
# verify
# ---------------------------------------------------------------------------

@aigit_app.command("verify")
def verify_cmd(
    ctx: typer.Context,
    commitish: str = typer.Argument(..., help="Commit to verify (sha, HEAD, branch, ...)"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Verify that a commit has a valid PoU transcript."""
    from aigit.store import get_store
    from aigit.transcript import check_binding, transcript_digest, verification_reasons

    verbose = _verbose(ctx)
    git = _open_repo()
    try:
        policy = _load_policy(git, verbose)
        store = get_store(git, policy.store or "git-notes")
        commit = git.resolve_commitish(commitish)
    except AigitError as exc:
        _die(str(exc))

    def _report(status: str, code: int, **extra: Any) -> NoReturn:
        if output_json:
            _output_json({"command": "verify", "status": status, "commit": commit, **extra})
        else:
            line = f"aigit verify: {status.upper()} ({commit})"
            console.print(f"[{'green' if code == EXIT_OK else 'red'}]{escape(line)}[/]", highlight=False)
        raise typer.Exit(code)

    try:
        transcript = store.load(commit)
        check_binding(transcript, commit, git.patch_id_for_commit(commit))
    except IntegrityError as exc:
        if not output_json:
            err_console.print(f"[red]aigit verify:[/] {escape(exc.message)}", highlight=False)
        _report("fail", EXIT_VERIFY_FAILED, error=exc.to_dict())
    except AigitError as exc:
        _die(str(exc))

    reasons = verification_reasons(transcript, policy)
    digest = transcript_digest(transcript)
    if verbose:
        _note(f"transcript digest: {digest}")
        for reason in reasons:
            _note(f"reason: {reason}")
    if reasons:
        _report("fail", EXIT_VERIFY_FAILED, reasons=reasons, transcript_digest=digest)
    _report("pass", EXIT_OK, reasons=[], transcript_digest=digest)


# ---------------------------------------------------------------------------
# install-hook
# ---------------------------------------------------------------------------

@aigit_app.command("install-hook")
def install_hook_cmd(
    mode: HookMode = typer.Option(HookMode.pre_commit, "--mode", help="Hook to install"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing hook"),
):
    """Install git hook to enforce using `aigit commit`."""
    git = _open_repo()
    try:
        hook_path = git.install_pre_commit_hook(force=force)
    except (GitError, OSError) as exc:
        _die(str(exc))
    _note(f"installed {mode.value} hook at {hook_path}")


# ---------------------------------------------------------------------------
# policy / config
# ---------------------------------------------------------------------------

@policy_app.command("validate")
def policy_validate_cmd(ctx: typer.Context):
    """Load .aigit.toml and check it (including redaction patterns)."""
    from aigit.redact import compile_redaction_patterns

    verbose = _verbose(ctx)
    git = _open_repo()
    try:
        policy = _load_policy(git, verbose)
        compile_redaction_patterns(policy.redactions)
    except AigitError as exc:
        _die(str(exc))
    if verbose:
        err_console.print_json(json.dumps(policy.to_dict()))
    _note("policy OK")


@config_app.command("set")
def config_set_cmd(
    key: str = typer.Argument(..., help="Policy key (min_total_score, max_hallucination_flags, exam_mode, ...)"),
    value: str = typer.Argument(..., help="New value"),
):
    """Set one policy key and rewrite .aigit.toml."""
    from aigit.policy import load_policy, save_policy

    git = _open_repo()
    try:
        policy = load_policy(git.repo.workdir).set_key(key, value)
        path = save_policy(git.repo.workdir, policy)
    except (AigitError, OSError) as exc:
        _die(str(exc))
    console.print(f"wrote {escape(str(path))}", highlight=False)


# ---------------------------------------------------------------------------
# dashboard
# ---------------------------------------------------------------------------

@dashboard_app.command("export")
def dashboard_export_cmd(
    out: str = typer.Option("dashboard/public/data.json", "--out", help="Output path for the exported JSON"),
    include_answers: bool = typer.Option(
        False, "--include-answers", help="Include full answer text in the export (can be sensitive)",
    ),
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="Maximum number of transcripts (newest first)"),
):
    """Export transcripts from git notes (ref=aigit) as JSON for the web dashboard."""
    from aigit.dashboard import build_export, write_export
    from aigit.store import TranscriptStore

    git = _open_repo()

    def _skip(sha: str, reason: str) -> None:
        err_console.print(f"[yellow]aigit: dashboard: skipping {sha}: {escape(reason)}[/]", highlight=False)

    try:
        export = build_export(
            git, TranscriptStore(git), include_answers=include_answers, limit=limit, on_skip=_skip,
        )
        path = write_export(export, Path(out))
    except (AigitError, OSError) as exc:
        _die(str(exc))
    _note(f"dashboard: wrote {path} ({len(export.entries)} entries)")


@dashboard_app.command("serve")
def dashboard_serve_cmd(
    directory: str = typer.Option("dashboard/public", "--dir", help="Directory to serve (should contain index.html)"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(5173, "--port", help="Port to bind to"),
):
    """Serve the dashboard as a local static site."""
    from aigit.dashboard import make_server

    git = _open_repo()
    root = git.repo.workdir / directory
    try:
        server = make_server(root, host, port)
    except OSError as exc:
        _die(f"failed to serve {root}: {exc}")
    _note(f"dashboard: serving {root} on http://{host}:{port}")
    _note("dashboard: press Ctrl+C to stop")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------

@aigit_app.command("version")
def version_cmd(output_json: bool = typer.Option(False, "--json", help="Output as JSON")):
    """Show version info."""
    from aigit import __version__
    from aigit.models import PROTOCOL_VERSION
    from aigit.transcript import TRANSCRIPT_SCHEMA_VERSION

    info: Dict[str, str] = {
        "version": __version__,
        "protocol_version": PROTOCOL_VERSION,
        "transcript_schema": TRANSCRIPT_SCHEMA_VERSION,
    }
    if output_json:
        _output_json(info)
        return
    console.print(f"[bold]aigit[/] {info['version']}")
    console.print(f"  protocol: {info['protocol_version']}")
    console.print(f"  transcript schema: {info['transcript_schema']}")
