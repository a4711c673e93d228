"""Directory planning for resolved environments.

Derives the source and destination directories implied by an ``EnvConfig``.
The same plan backs ``projmake init`` (create the layout) and the generate
commands (locate the source layers and the output root of a resource).
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from .config import EnvConfig, ProjectConfig
from .utils import ensure_dir, print_line


class ResourceType(str, Enum):
    BINARIES = "binaries"
    CONFIGS = "configs"
    IMAGES = "images"
    KUBERNETES = "kubernetes"


def _roots(env: EnvConfig, kind: ResourceType) -> tuple[str, str]:
    """Return the ``(src, tgt)`` roots of *kind* (``tgt`` may be empty)."""
    if kind is ResourceType.BINARIES:
        return env.binary_src, env.binary_tgt
    if kind is ResourceType.CONFIGS:
        return env.config_src, env.config_tgt
    if kind is ResourceType.IMAGES:
        return env.image_build_src, ""
    return env.kubernetes_src, env.kubernetes_tgt


def _allow_list(env: EnvConfig, kind: ResourceType) -> list[str]:
    if kind is ResourceType.BINARIES:
        return env.binaries
    if kind is ResourceType.CONFIGS:
        return env.configs
    if kind is ResourceType.IMAGES:
        return env.images
    return env.kubernetes_templates


def plan_env_directories(env: EnvConfig) -> list[Path]:
    """Return every directory implied by *env*, sorted and de-duplicated.

    Each non-empty source/target root is included together with one
    sub-directory per allow-listed resource.  Binary outputs are flat files,
    so no per-binary directories are planned under ``binary_tgt``.
    """
    targets: set[Path] = set()
    for kind in ResourceType:
        src, tgt = _roots(env, kind)
        names = _allow_list(env, kind)
        for index, root in enumerate((src, tgt)):
            if not root:
                continue
            targets.add(Path(root))
            if kind is ResourceType.BINARIES and index == 1:
                continue
            targets.update(Path(root) / name for name in names)
    return sorted(targets)


def create_env_directories(env_name: str, env: EnvConfig) -> list[Path]:
    """Create the missing directories planned for *env*.

    Returns:
        The directories that were actually created.
    """
    created: list[Path] = []
    for directory in plan_env_directories(env):
        if directory.exists():
            continue
        ensure_dir(directory)
        print_line(f"create directories {directory} for environment {env_name}")
        created.append(directory)
    return created


def resource_sources(
    config: ProjectConfig,
    env: EnvConfig,
    kind: ResourceType,
    name: str,
    src: str = "",
) -> list[Path]:
    """Return the ordered source layers of a generated resource.

    The default environment's directory comes first and the selected
    environment's directory second, so the environment's files overlay the
    defaults.  A definition-level *src* is rendered last.  Duplicate layers
    are dropped.
    """
    default_root, _ = _roots(config.default, kind)
    env_root, _ = _roots(env, kind)

    layers: list[Path] = []
    for root in (default_root, env_root):
        if root:
            layers.append(Path(root) / name)
    if src:
        layers.append(Path(src))

    unique: list[Path] = []
    for layer in layers:
        if layer not in unique:
            unique.append(layer)
    return unique


def resource_output_root(env: EnvConfig, kind: ResourceType, override: str | Path = "") -> Path:
    """Return the directory receiving rendered *kind* resources.

    Precedence: explicit *override*, then the environment target root, then
    the environment source root (render in place).
    """
    if override:
        return Path(override)
    src, tgt = _roots(env, kind)
    return Path(tgt or src)
