"""Shared utility functions for projmake.

Provides async command execution, file-system helpers and Rich-based console
reporting.  Output helpers take the environment name explicitly so that every
line can be tagged with the environment it was produced for.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: list[str],
    cwd: str | Path | None = None,
    env: list[str] | dict[str, str] | None = None,
    echo: bool = False,
) -> tuple[int, str, str]:
    """Run a command asynchronously and capture its output.

    Args:
        cmd: Program and arguments.
        cwd: Working directory for the child process.
        env: Extra environment variables, either as a mapping or as
            ``KEY=value`` strings, layered on top of ``os.environ``.
        echo: Also print stdout lines to the console as they arrive.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.
    """
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **_env_mapping(env)}

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
        env=merged_env,
    )

    assert process.stdout is not None and process.stderr is not None  # guaranteed by PIPE
    lines: list[str] = []

    async def _read_stdout() -> None:
        while True:
            line_bytes = await process.stdout.readline()
            if not line_bytes:
                break
            line = line_bytes.decode("utf-8", errors="replace").rstrip("\n")
            lines.append(line)
            if echo:
                console.print(escape(line), highlight=False)

    _, stderr_bytes = await asyncio.gather(_read_stdout(), process.stderr.read())
    await process.wait()
    stderr_str = stderr_bytes.decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, "\n".join(lines).strip(), stderr_str)


def _env_mapping(env: list[str] | dict[str, str]) -> dict[str, str]:
    if isinstance(env, dict):
        return dict(env)
    mapping: dict[str, str] = {}
    for item in env:
        key, sep, value = item.partition("=")
        if sep:
            mapping[key] = value
    return mapping


# ---------------------------------------------------------------------------
# File-system helpers
# ---------------------------------------------------------------------------


def ensure_dir(path: str | Path) -> Path:
    """Create a directory (and parents) if it does not exist.

    Returns:
        The ``Path`` object for the directory.
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def _env_tag(env_name: str) -> str:
    if not env_name:
        return ""
    return f"[bold bright_cyan]\\[ {escape(env_name)} ][/bold bright_cyan] "


def print_title(message: str, env_name: str = "") -> None:
    """Print a bold green section title, tagged with the environment."""
    console.print(f"{_env_tag(env_name)}[bold bright_green]{escape(message)}[/bold bright_green]")


def print_line(message: str) -> None:
    """Print a plain progress line."""
    console.print(f"[bright_white]{escape(message)}[/bright_white]", highlight=False)


def print_debug(message: str, env_name: str = "", verbose: bool = True) -> None:
    """Print a blue diagnostic line; suppressed unless *verbose*."""
    if not verbose:
        return
    console.print(f"{_env_tag(env_name)}[bright_blue]{escape(message)}[/bright_blue]", highlight=False)


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()
