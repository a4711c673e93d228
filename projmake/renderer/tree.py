"""Directory-tree rendering.

Provides the TreeRenderer class which walks a source directory and
materializes it into a destination directory.  Each entry is either skipped
(its logical path matches none of the inclusion globs), copied verbatim, or
rendered through Jinja2 when its base name carries the template prefix.

Templates use ``[[ ]]`` for expressions, ``[% %]`` for statements and
``[# #]`` for comments so that ``{{ }}`` and ``${ }`` sequences in the
rendered YAML, shell or Helm content pass through untouched.
"""

from __future__ import annotations

import fnmatch
import shutil
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined

from ..config import EnvConfig, ProjectConfig
from ..utils import ensure_dir, print_debug, print_line
from .functions import TemplateFunctionError, TemplateFunctions

DEFAULT_TEMPLATE_PREFIX = "template."


class RenderError(Exception):
    """Raised when a resource tree cannot be rendered."""

    def __init__(self, message: str, resource: str = "", path: str | Path = "") -> None:
        self.resource = resource
        self.path = str(path)
        super().__init__(message)


class PatternError(RenderError):
    """Raised for a syntactically invalid inclusion glob."""


# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------


def validate_patterns(patterns: Sequence[str]) -> None:
    """Reject globs with an unterminated ``[`` character class.

    Raises:
        PatternError: For the first malformed pattern.
    """
    for pattern in patterns:
        index = 0
        while index < len(pattern):
            if pattern[index] == "[":
                end = index + 1
                if end < len(pattern) and pattern[end] in "!^":
                    end += 1
                if end < len(pattern) and pattern[end] == "]":
                    end += 1
                end = pattern.find("]", end)
                if end == -1:
                    raise PatternError(f"syntax error in pattern {pattern!r}: unterminated '['")
                index = end
            index += 1


def matches(path: str, patterns: Sequence[str]) -> bool:
    """Return ``True`` if *path* matches any glob (an empty list matches all).

    Matching is case-sensitive and ``*`` also crosses ``/``, so ``*.yaml``
    selects YAML files at any depth.
    """
    if not patterns:
        return True
    return any(fnmatch.fnmatchcase(path, pattern) for pattern in patterns)


def strip_prefix(name: str, prefix: str) -> str | None:
    """Return *name* without *prefix*, or ``None`` if it is not a template name."""
    if prefix and name.startswith(prefix) and len(name) > len(prefix):
        return name[len(prefix):]
    return None


def _iter_entries(root: Path) -> Iterator[Path]:
    # Sorted, pre-order: a directory is yielded before its contents.
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        yield entry
        if entry.is_dir() and not entry.is_symlink():
            yield from _iter_entries(entry)


# ---------------------------------------------------------------------------
# TreeRenderer
# ---------------------------------------------------------------------------


class TreeRenderer:
    """Renders resource trees for one project and environment.

    The template context exposes ``Name`` (the resource being rendered),
    ``Config`` (the project descriptor) and ``Env`` (the effective
    environment), plus every function of the bound ``TemplateFunctions``.

    Names are plain Jinja2 variables: Go-template field syntax such as
    ``[[ .Name ]]`` is a syntax error here and must be written
    ``[[ Name ]]``.
    """

    def __init__(
        self,
        functions: TemplateFunctions,
        prefix: str = DEFAULT_TEMPLATE_PREFIX,
        *,
        env_name: str = "",
        verbose: bool = False,
    ) -> None:
        self.functions = functions
        self.prefix = prefix
        self.env_name = env_name
        self.verbose = verbose
        self.engine = Environment(
            variable_start_string="[[",
            variable_end_string="]]",
            block_start_string="[%",
            block_end_string="%]",
            comment_start_string="[#",
            comment_end_string="#]",
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self.engine.globals.update(functions.as_globals())

    @property
    def config(self) -> ProjectConfig:
        return self.functions.config

    @property
    def env(self) -> EnvConfig:
        return self.functions.env

    # -- Template rendering ------------------------------------------------

    def context(self, name: str) -> dict[str, Any]:
        return {"Name": name, "Config": self.config, "Env": self.env}

    def render_string(self, source: str, name: str) -> str:
        """Render an inline template for resource *name*.

        Raises:
            RenderError: On a parse error, an undefined variable or a failing
                template function.
        """
        try:
            template = self.engine.from_string(source)
            return template.render(**self.context(name))
        except TemplateFunctionError as exc:
            raise RenderError(str(exc), resource=name, path=exc.filename) from exc
        except Exception as exc:
            raise RenderError(f"template error: {exc}", resource=name) from exc

    # -- Tree rendering ----------------------------------------------------

    def render(
        self,
        name: str,
        src_dir: str | Path,
        dst_dir: str | Path,
        patterns: Sequence[str] | None = None,
        *,
        clean: bool = True,
    ) -> list[Path]:
        """Materialize *src_dir* into *dst_dir* for resource *name*.

        Args:
            name: Resource name, exposed to templates as ``Name``.
            src_dir: Source tree to walk.
            dst_dir: Destination tree.
            patterns: Inclusion globs tested against each entry's logical
                (prefix-stripped) relative path.  Empty selects everything.
            clean: Remove *dst_dir* before walking.  Layered renders pass
                ``False`` for every layer after the first.

        Returns:
            The files written, in walk order.

        Raises:
            PatternError: If a glob is malformed (nothing is written).
            RenderError: On the first I/O or template failure.  Files written
                before the failure are left in place.
        """
        patterns = list(patterns or [])
        validate_patterns(patterns)

        src_root = Path(src_dir)
        dst_root = Path(dst_dir)

        try:
            if clean and dst_root.exists():
                shutil.rmtree(dst_root)
            entries = list(_iter_entries(src_root))
        except OSError as exc:
            raise RenderError(f"failed to walk {src_root}: {exc}", resource=name, path=src_root) from exc

        written: list[Path] = []
        for entry in entries:
            rel = entry.relative_to(src_root)
            logical_name = strip_prefix(entry.name, self.prefix)
            logical = rel.with_name(logical_name) if logical_name else rel
            if not matches(logical.as_posix(), patterns):
                print_debug(f"skip {rel.as_posix()}", self.env_name, self.verbose)
                continue

            try:
                if entry.is_dir():
                    ensure_dir(dst_root / rel)
                    continue
                if logical_name:
                    target = dst_root / logical
                    print_line(f"render {logical.as_posix()} from {entry}")
                    content = self.render_string(entry.read_text(encoding="utf-8"), name)
                    ensure_dir(target.parent)
                    target.write_bytes(content.encode("utf-8"))
                else:
                    target = dst_root / rel
                    print_line(f"copy {rel.as_posix()} from {entry}")
                    ensure_dir(target.parent)
                    shutil.copyfile(entry, target)
            except RenderError as exc:
                raise RenderError(
                    f"failed to render {entry}: {exc}", resource=name, path=entry
                ) from exc
            except (OSError, UnicodeDecodeError) as exc:
                raise RenderError(
                    f"failed to materialize {entry}: {exc}", resource=name, path=entry
                ) from exc
            written.append(target)
        return written


def render_tree(
    name: str,
    src_dir: str | Path,
    dst_dir: str | Path,
    prefix: str = DEFAULT_TEMPLATE_PREFIX,
    patterns: Sequence[str] | None = None,
    *,
    config: ProjectConfig,
    env: EnvConfig,
    config_root: str | Path | None = None,
    clean: bool = True,
) -> list[Path]:
    """Render one resource tree with a freshly bound function registry."""
    functions = TemplateFunctions(config, env, config_root=config_root)
    return TreeRenderer(functions, prefix).render(name, src_dir, dst_dir, patterns, clean=clean)
