"""
Command line executables for the capture pipeline.

    capture_run --cmd "<command>"        -> prints the bundle directory
    capture_run_to_episodes --run-dir D  -> prints episodes/episodes.jsonl
    analyze_patterns_basic --run-dir D   -> prints patterns/patterns.json
    verify_run --run-dir D               -> prints evidence/verdict.json

Paths go to stdout; logs and errors go to stderr.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..capture.layout import VERDICT_FILE
from ..capture.orchestrator import CaptureOptions, capture_run
from ..config import get_settings
from ..enums import Verdict
from ..episodes import capture_run_to_episodes
from ..logging_config import configure_logging
from ..patterns import SIGNATURE_SETS, analyze_patterns
from ..verify import verify_bundle

capture_app = typer.Typer(help="Run a command and capture a redacted, hashed artifact bundle.")
episodes_app = typer.Typer(help="Map a capture bundle's events into episodes.")
patterns_app = typer.Typer(help="Extract sequence patterns from a bundle's episodes.")
verify_app = typer.Typer(help="Verify a capture bundle against its hash manifest.")

err_console = Console(stderr=True)

_TRUE_VALUES = {"true", "1", "yes", "y"}
_FALSE_VALUES = {"false", "0", "no", "n"}


def parse_bool(value: Optional[str], default: bool) -> bool:
    """Lenient boolean parsing; unrecognized values fall back to the default."""
    if value is None:
        return default
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


class SignatureSet(str, Enum):
    BASIC = "basic"
    EXTENDED = "extended"


def _setup():
    settings = get_settings()
    configure_logging(settings)
    return settings


def _fail(tool: str, error: Exception) -> None:
    typer.echo(f"{tool}: {error}", err=True)
    raise typer.Exit(code=1)


@capture_app.command()
def capture(
    cmd: str = typer.Option(..., "--cmd", help="Shell command to run"),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory (default: current)"),
    git: Optional[str] = typer.Option(None, "--git", help="Capture git snapshots (true/false)"),
    allow_raw_logs: Optional[str] = typer.Option(
        None, "--allow-raw-logs", help="Also write redacted full logs (true/false)"
    ),
    stdout_bytes: Optional[int] = typer.Option(None, "--stdout-bytes", min=0, help="stdout tail size"),
    stderr_bytes: Optional[int] = typer.Option(None, "--stderr-bytes", min=0, help="stderr tail size"),
):
    """Run CMD, print the bundle directory, exit with CMD's exit code."""
    settings = _setup()
    try:
        options = CaptureOptions(
            cmd=cmd,
            cwd=cwd or Path.cwd(),
            git_enabled=parse_bool(git, settings.git_enabled),
            allow_raw_logs=parse_bool(allow_raw_logs, settings.allow_raw_logs),
            stdout_bytes=settings.stdout_bytes if stdout_bytes is None else stdout_bytes,
            stderr_bytes=settings.stderr_bytes if stderr_bytes is None else stderr_bytes,
            artifacts_root=settings.artifacts_root,
        )
        result = capture_run(options)
    except Exception as e:
        _fail("capture_run", e)

    typer.echo(str(result.run_dir))
    raise typer.Exit(code=result.exit_code)


@episodes_app.command()
def episodes(
    run_dir: Path = typer.Option(..., "--run-dir", help="Capture bundle directory"),
):
    """Write episodes/episodes.jsonl and print its path."""
    _setup()
    try:
        output_path = capture_run_to_episodes(run_dir)
    except Exception as e:
        _fail("capture_run_to_episodes", e)
    typer.echo(str(output_path))


@patterns_app.command()
def patterns(
    run_dir: Path = typer.Option(..., "--run-dir", help="Capture bundle directory"),
    signatures: SignatureSet = typer.Option(
        SignatureSet.BASIC, "--signatures", case_sensitive=False, help="Signature set to match"
    ),
):
    """Write patterns/patterns.json and patterns_core.json; print the former."""
    _setup()
    try:
        output_path = analyze_patterns(run_dir, SIGNATURE_SETS[signatures.value])
    except Exception as e:
        _fail("analyze_patterns_basic", e)
    typer.echo(str(output_path))


@verify_app.command()
def verify(
    run_dir: Path = typer.Option(..., "--run-dir", help="Capture bundle directory"),
):
    """Verify hashes, event order and redaction; exit 1 unless the verdict is pass."""
    _setup()
    try:
        result = verify_bundle(run_dir)
    except Exception as e:
        _fail("verify_run", e)

    table = Table(title=f"Verification: {result.verdict.value}", show_header=True, header_style="bold magenta")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    for check in result.checks:
        table.add_row(
            check.name,
            "[green]pass[/green]" if check.passed else "[red]fail[/red]",
            check.detail or "",
        )
    err_console.print(table)

    typer.echo(str(result.run_dir / VERDICT_FILE))
    if result.verdict != Verdict.PASS:
        raise typer.Exit(code=1)


def capture_main():
    """Entry point for capture_run."""
    capture_app()


def episodes_main():
    """Entry point for capture_run_to_episodes."""
    episodes_app()


def patterns_main():
    """Entry point for analyze_patterns_basic."""
    patterns_app()


def verify_main():
    """Entry point for verify_run."""
    verify_app()
