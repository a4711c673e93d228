"""Unit tests for utility functions (projmake.utils).

Tests cover:
- run_command (success, failure, cwd, env as mapping and KEY=value list, echo)
- ensure_dir
- Rich output helpers (titles with environment tag, verbose gating)
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from projmake.utils import (
    console,
    ensure_dir,
    print_debug,
    print_error,
    print_line,
    print_success,
    print_summary_table,
    print_title,
    print_warning,
    run_command,
)


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command(self):
        returncode, stdout, stderr = await run_command([sys.executable, "-c", "print('hello')"])
        assert returncode == 0
        assert stdout == "hello"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_command(self):
        returncode, _, _ = await run_command([sys.executable, "-c", "import sys; sys.exit(3)"])
        assert returncode == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_with_cwd(self, tmp_path: Path):
        returncode, stdout, _ = await run_command(
            [sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path
        )
        assert returncode == 0
        assert Path(stdout).resolve() == tmp_path.resolve()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_env_mapping(self):
        _, stdout, _ = await run_command(
            [sys.executable, "-c", "import os; print(os.environ['TEST_VAR'])"],
            env={"TEST_VAR": "test_value"},
        )
        assert stdout == "test_value"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_env_assignment_list(self):
        _, stdout, _ = await run_command(
            [sys.executable, "-c", "import os; print(os.environ['GOOS'], os.environ['X'])"],
            env=["GOOS=linux", "X=a=b", "malformed"],
        )
        assert stdout == "linux a=b"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stderr_captured(self):
        _, _, stderr = await run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('error_msg\\n')"]
        )
        assert stderr == "error_msg"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_echo_prints_lines(self):
        with console.capture() as capture:
            _, stdout, _ = await run_command(
                [sys.executable, "-c", "print('one'); print('two')"], echo=True
            )
        assert stdout == "one\ntwo"
        assert "one" in capture.get()
        assert "two" in capture.get()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_program_raises(self):
        with pytest.raises(OSError):
            await run_command(["nonexistent-binary-12345-xyz"])


# ---------------------------------------------------------------------------
# ensure_dir
# ---------------------------------------------------------------------------


class TestEnsureDir:
    @pytest.mark.unit
    def test_creates_nested(self, tmp_path: Path):
        target = tmp_path / "a" / "b"
        assert ensure_dir(target) == target
        assert target.is_dir()

    @pytest.mark.unit
    def test_existing_ok(self, tmp_path: Path):
        assert ensure_dir(tmp_path) == tmp_path


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


class TestOutputHelpers:
    @pytest.mark.unit
    def test_title_tagged_with_env(self):
        with console.capture() as capture:
            print_title("Generate config svc", "prod")
        assert "[ prod ] Generate config svc" in capture.get()

    @pytest.mark.unit
    def test_title_without_env(self):
        with console.capture() as capture:
            print_title("Build", "")
        assert capture.get().strip() == "Build"

    @pytest.mark.unit
    def test_markup_in_message_escaped(self):
        with console.capture() as capture:
            print_line("name=[[ Name ]] [bold]x[/bold]")
        assert "[[ Name ]] [bold]x[/bold]" in capture.get()

    @pytest.mark.unit
    def test_debug_gated_by_verbose(self):
        with console.capture() as capture:
            print_debug("hidden", verbose=False)
            print_debug("shown", "dev", verbose=True)
        output = capture.get()
        assert "hidden" not in output
        assert "[ dev ] shown" in output

    @pytest.mark.unit
    def test_status_helpers(self):
        with console.capture() as capture:
            print_success("ok")
            print_warning("careful")
            print_error("broken")
            print_summary_table({"env": "prod"}, title="Run")
        output = capture.get()
        for text in ("ok", "careful", "broken", "prod", "Run"):
            assert text in output
