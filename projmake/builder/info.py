"""Build metadata collected once per invocation.

``BuildInfo`` replaces the package-level variables a Go binary would carry:
it is assembled from the descriptor, the working directory and git, and is
passed explicitly to whatever needs it (``-ldflags`` injection, templates).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from pathlib import Path

from ..config import ProjectConfig
from ..utils import run_command


def env_prefix(name: str) -> str:
    """Normalize a product name into an environment-variable prefix.

    Spaces and hyphens become underscores and the result is uppercased::

        env_prefix("my product-x") -> "MY_PRODUCT_X"
    """
    return name.replace(" ", "_").replace("-", "_").upper()


@dataclass
class BuildInfo:
    """Product, project and git metadata injected into built binaries."""

    product_name: str = ""
    product_model: str = ""
    product_version: str = ""

    project_root: str = ""
    project_name: str = ""
    project_path: str = ""

    git_branch: str = ""
    git_tag: str = ""

    build_version: str = ""
    build_type: str = ""
    build_date: str = ""
    build_time: str = ""

    def injections(self) -> dict[str, str]:
        """Return ``{GoName: value}`` pairs, e.g. ``{"ProductName": "acme"}``."""
        return {
            "".join(part.capitalize() for part in f.name.split("_")): getattr(self, f.name)
            for f in fields(self)
        }

    def version(self) -> str:
        """Human-readable version: product and build version, plus build type."""
        parts: list[str] = []
        for value in (self.product_version, self.build_version):
            if value not in parts:
                parts.append(value)
        if self.build_type:
            parts.append(f"({self.build_type})")
        return " ".join(parts)


def ldflags(info: BuildInfo, package: str) -> list[str]:
    """Return ``go build`` arguments injecting *info* into *package*.

    Returns an empty list when no target package is configured.
    """
    if not package:
        return []
    assignments = [f"-X {package}.{key}={value}" for key, value in info.injections().items()]
    return ["-ldflags", " ".join(assignments)]


async def _git(*args: str, cwd: Path) -> str | None:
    try:
        returncode, stdout, _ = await run_command(["git", *args], cwd=cwd)
    except OSError:
        # git is not installed
        return None
    if returncode != 0:
        return None
    return stdout.strip()


async def collect_build_info(
    config: ProjectConfig,
    project_root: str | Path | None = None,
    **overrides: str,
) -> BuildInfo:
    """Assemble ``BuildInfo`` for the project rooted at *project_root*.

    Git branch and tag are read when the directory is a git work tree.  The
    build version falls back to the git tag and the product version to the
    build version.  Non-empty keyword *overrides* (``product_model``,
    ``build_version``, ...) replace the collected values.
    """
    root = Path(project_root or Path.cwd()).resolve()
    info = BuildInfo(
        product_name=config.product,
        product_model=config.model,
        product_version=config.version,
        project_root=str(root),
        project_name=config.project,
        build_time=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )

    gopath = os.environ.get("GOPATH", "")
    if gopath:
        src_root = Path(gopath) / "src"
        try:
            info.project_path = str(root.relative_to(src_root))
        except ValueError:
            info.project_path = str(root).strip(os.sep)
    else:
        info.project_path = str(root).strip(os.sep)

    if await _git("rev-parse", "--git-dir", cwd=root) is not None:
        info.git_branch = await _git("rev-parse", "--abbrev-ref", "HEAD", cwd=root) or ""
        info.git_tag = await _git("describe", "--tags", "--always", cwd=root) or ""

    for key, value in overrides.items():
        if value and hasattr(info, key):
            setattr(info, key, value)

    if not info.build_version:
        info.build_version = info.git_tag
    if not info.product_version:
        info.product_version = info.build_version
    return info
