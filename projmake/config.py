"""Project descriptor models.

Typed representation of ``project.yaml``.  All sections use Pydantic v2
models so the descriptor is validated once, at load time, and every later
stage (environment resolution, path planning, rendering, building) works on
plain attribute access instead of nested dictionaries.
"""

from __future__ import annotations

import posixpath
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_FILE = "project.yaml"

_GO_MODULE_RE = re.compile(r"^\s*module\s+(\S+)", re.MULTILINE)


class ConfigError(Exception):
    """Raised when the project descriptor cannot be loaded or is invalid."""

    def __init__(self, message: str, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        super().__init__(message)


# ---------------------------------------------------------------------------
# Environment layer
# ---------------------------------------------------------------------------


class EnvConfig(BaseModel):
    """Per-environment settings.

    The ``default`` section and every entry under ``env`` share this shape.
    Every field defaults to empty so that an environment only needs to list
    the values it overrides.  Instances are frozen: an effective environment
    is derived once and never mutated.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    config_src: str = ""
    config_tgt: str = ""
    configs: list[str] = Field(default_factory=list)

    binary_src: str = ""
    binary_tgt: str = ""
    binaries: list[str] = Field(default_factory=list)
    binary_build_env: list[str] = Field(default_factory=list)
    binary_build_args: list[str] = Field(default_factory=list)

    image_build_src: str = ""
    images: list[str] = Field(default_factory=list)
    image_prefix: str = ""
    image_tag: str = ""
    image_build_env: list[str] = Field(default_factory=list)
    image_build_args: list[str] = Field(default_factory=list)

    kubernetes_src: str = ""
    kubernetes_tgt: str = ""
    kubernetes_templates: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Build definitions
# ---------------------------------------------------------------------------


class BinaryDefinition(BaseModel):
    """A binary built with ``go build``."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    name: str
    src: str = ""
    platform: list[str] = Field(
        default_factory=list, description="Extra target platforms as ``os/arch``"
    )
    config_dir: str = ""


class ImageDefinition(BaseModel):
    """A container image built from a Dockerfile or re-tagged from another image."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    name: str
    base: str = Field(default="", description="Base image; ``$name`` refers to another image")
    build_src: str = ""
    build_from: str = Field(default="", description="Third-party image to pull and re-tag")
    prefix: str = ""
    repo: str = ""
    tag: str = ""
    no_push: bool = False

    def image_name(self, env: EnvConfig) -> str:
        """Return the fully qualified ``[prefix/]repo:tag`` reference.

        Values set on the definition win over the environment's
        ``image_prefix``/``image_tag``.  The repository defaults to the image
        name and the tag to ``latest``; without any prefix the reference is
        just ``repo:tag``.
        """
        repo = self.repo or self.name
        tag = self.tag or env.image_tag or "latest"
        prefix = self.prefix or env.image_prefix
        if prefix:
            return f"{posixpath.join(prefix, repo)}:{tag}"
        return f"{repo}:{tag}"


class BuildSection(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    binaries: list[BinaryDefinition] = Field(default_factory=list)
    images: list[ImageDefinition] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Generate definitions
# ---------------------------------------------------------------------------


class ResourceDefinition(BaseModel):
    """A rendered file tree: a config bundle or a Kubernetes template set."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    name: str
    src: str = ""
    files: list[str] = Field(
        default_factory=list,
        description="Glob patterns selecting the files to materialize (empty = all)",
    )


class GenerateSection(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    configs: list[ResourceDefinition] = Field(default_factory=list)
    kubernetes: list[ResourceDefinition] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Root descriptor
# ---------------------------------------------------------------------------


class ProjectConfig(BaseModel):
    """The whole project descriptor.

    ``default`` is the base environment layer; ``env`` holds sparse
    per-environment overrides that are merged onto it by
    :func:`projmake.environment.resolve_env`.  Entries of ``build`` and
    ``generate`` only take effect when an environment allow-lists them by
    name.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    product: str = ""
    model: str = ""
    version: str = ""
    domain: str = ""
    project: str = ""
    info_package: str = Field(
        default="",
        description="Go package receiving build info through -ldflags -X (empty = no injection)",
    )

    default: EnvConfig = Field(default_factory=EnvConfig)
    env: dict[str, EnvConfig] = Field(default_factory=dict)
    build: BuildSection = Field(default_factory=BuildSection)
    generate: GenerateSection = Field(default_factory=GenerateSection)

    @field_validator("default", "build", "generate", mode="before")
    @classmethod
    def _empty_section(cls, value: Any) -> Any:
        # A bare ``default:`` key loads as None.
        return {} if value is None else value

    @field_validator("env", mode="before")
    @classmethod
    def _empty_environments(cls, value: Any) -> Any:
        """Treat ``env:`` and bare ``<name>:`` keys as environments with no overrides."""
        if value is None:
            return {}
        if isinstance(value, dict):
            return {name: {} if overrides is None else overrides for name, overrides in value.items()}
        return value

    def find_binary(self, name: str) -> BinaryDefinition | None:
        for binary in self.build.binaries:
            if binary.name == name:
                return binary
        return None

    def find_image(self, name: str) -> ImageDefinition | None:
        for image in self.build.images:
            if image.name == name:
                return image
        return None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _read_go_module(go_mod: Path) -> str:
    """Return the module path declared in a ``go.mod`` file, or ``""``."""
    try:
        text = go_mod.read_text(encoding="utf-8")
    except OSError:
        return ""
    match = _GO_MODULE_RE.search(text)
    return match.group(1).strip('"') if match else ""


def parse_config(data: Any, path: str | Path | None = None) -> ProjectConfig:
    """Validate an already-parsed descriptor mapping.

    Raises:
        ConfigError: If *data* is not a mapping or fails validation.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Project descriptor must be a mapping, got {type(data).__name__}", path
        )
    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid project descriptor: {exc}", path) from exc


def load_config(path: str | Path = DEFAULT_CONFIG_FILE) -> ProjectConfig:
    """Load and validate the project descriptor at *path*.

    When ``project`` is not set and a ``go.mod`` file sits next to the
    descriptor, the module path declared there becomes the project name.

    Args:
        path: The YAML descriptor to read.

    Returns:
        A validated ``ProjectConfig``.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid YAML, or
            does not describe a valid project.
    """
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read project descriptor {config_path}: {exc}", config_path) from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed YAML in {config_path}: {exc}", config_path) from exc

    config = parse_config(data, config_path)
    if not config.project:
        module = _read_go_module(config_path.parent / "go.mod")
        if module:
            config = config.model_copy(update={"project": module})
    return config
