"""Binary and image builds through external tools.

Composes ``go build`` and ``docker`` command lines from the effective
environment and runs them one after another.  Command composition is kept
separate from execution so the resulting argument lists can be inspected
before anything runs.
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from ..config import BinaryDefinition, EnvConfig, ImageDefinition, ProjectConfig
from ..environment import MATCH_ALL, select_resources
from ..utils import print_debug, print_line, print_title, run_command
from .info import BuildInfo, ldflags


class BuildError(Exception):
    """Raised when a build command cannot be composed or exits non-zero."""

    def __init__(self, message: str, command: str = "", stderr: str = ""):
        self.command = command
        self.stderr = stderr
        super().__init__(message)


@dataclass
class Command:
    """One external tool invocation."""

    program: str
    args: list[str]
    env: list[str] = field(default_factory=list)
    description: str = ""

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def __str__(self) -> str:
        return shlex.join(self.argv)


async def execute(command: Command, *, echo: bool = True, verbose: bool = False) -> str:
    """Run *command* and return its stdout.

    Raises:
        BuildError: If the program is missing or exits with a non-zero code.
    """
    print_debug(f"executing {command}", verbose=verbose)
    if command.env:
        print_debug("env: " + " ".join(command.env), verbose=verbose)
    try:
        returncode, stdout, stderr = await run_command(command.argv, env=command.env, echo=echo)
    except OSError as exc:
        raise BuildError(f"Cannot run {command.program}: {exc}", command=str(command)) from exc
    if returncode != 0:
        raise BuildError(
            f"Command failed (exit {returncode}): {command}\n{stderr}",
            command=str(command),
            stderr=stderr,
        )
    return stdout


# ---------------------------------------------------------------------------
# Binaries
# ---------------------------------------------------------------------------

_PLATFORM_RE = re.compile(r"^([^/]+)/([^/]+)$")


def binary_build_command(
    binary: BinaryDefinition,
    env: EnvConfig,
    info: BuildInfo,
    output_dir: str | Path,
    platform: str = "",
    info_package: str = "",
) -> Command:
    """Compose the ``go build`` invocation for one binary and platform.

    Cross-compiled outputs are named ``<name>_<os>_<arch>`` and receive
    ``GOOS``/``GOARCH`` on top of the environment's ``binary_build_env``.

    Raises:
        BuildError: If *platform* is not of the form ``os/arch``.
    """
    name = binary.name
    build_env = list(env.binary_build_env)
    if platform:
        match = _PLATFORM_RE.match(platform)
        if not match:
            raise BuildError(f"unknown platform {platform}")
        goos, goarch = match.groups()
        name = f"{name}_{goos}_{goarch}"
        build_env += [f"GOOS={goos}", f"GOARCH={goarch}"]

    src = binary.src or str(Path(env.binary_src) / binary.name)
    args = ["build", *env.binary_build_args, *ldflags(info, info_package)]
    args += ["-o", str(Path(output_dir) / name), str(Path(info.project_root) / src)]
    return Command("go", args, build_env, description=f"build binary {name}")


def binary_build_commands(
    binary: BinaryDefinition,
    env: EnvConfig,
    info: BuildInfo,
    output_dir: str | Path,
    info_package: str = "",
) -> list[Command]:
    """Default-platform build followed by one build per extra platform."""
    platforms = ["", *binary.platform]
    return [
        binary_build_command(binary, env, info, output_dir, platform, info_package)
        for platform in platforms
    ]


async def build_binaries(
    config: ProjectConfig,
    env: EnvConfig,
    info: BuildInfo,
    *,
    pattern: re.Pattern[str] | str = MATCH_ALL,
    output: str | Path = "",
    env_name: str = "",
    verbose: bool = False,
) -> list[str]:
    """Build every selected binary; returns the built names in order."""
    output_dir = Path(output or env.binary_tgt)
    built: list[str] = []
    for binary in select_resources(env.binaries, config.build.binaries, pattern):
        commands = binary_build_commands(binary, env, info, output_dir, config.info_package)
        print_title(f"Build Binary {binary.name} from {commands[0].args[-1]}", env_name)
        for platform, command in zip(["", *binary.platform], commands):
            if platform:
                print_line(f"build for platform {platform}")
            await execute(command, verbose=verbose)
        built.append(binary.name)
    return built


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


def resolve_base_image(base: str, config: ProjectConfig, env: EnvConfig) -> str:
    """Expand a ``$name`` base into the reference of another project image.

    An unknown ``$name`` resolves to ``""``.
    """
    if not base.startswith("$"):
        return base
    image = config.find_image(base[1:])
    return image.image_name(env) if image else ""


def config_dir_of(config: ProjectConfig, name: str) -> str:
    binary = config.find_binary(name)
    return binary.config_dir if binary else ""


def image_build_steps(
    image: ImageDefinition,
    config: ProjectConfig,
    env: EnvConfig,
    project_root: str | Path,
    push: bool = False,
) -> list[Command]:
    """Compose the docker invocations producing (and optionally pushing) *image*.

    Images with ``build_from`` are pulled and re-tagged; all others are built
    from ``<build source>/Dockerfile`` with the project root as context.
    """
    root = Path(project_root)
    target = image.image_name(env)
    steps: list[Command] = []

    if image.build_from:
        steps.append(Command("docker", ["pull", image.build_from], description=f"pull image {image.build_from}"))
        steps.append(
            Command(
                "docker",
                ["tag", image.build_from, target],
                list(env.image_build_env),
                description=f"tag image from {image.build_from} to {target}",
            )
        )
    else:
        build_src = image.build_src or str(Path(env.image_build_src) / image.name)
        base = resolve_base_image(image.base, config, env)
        args = ["build", "-t", target, "--no-cache"]
        args += ["--build-arg", f"NAME={image.name}"]
        args += ["--build-arg", f"BASE={base}"]
        args += ["--build-arg", f"CONFIG_TGT={env.config_tgt}"]
        args += ["--build-arg", f"CONFIG_DIR={config_dir_of(config, image.name)}"]
        args += list(env.image_build_args)
        args += ["-f", str(root / build_src / "Dockerfile"), str(root)]
        steps.append(
            Command("docker", args, list(env.image_build_env), description=f"build image {target} from {build_src}")
        )

    if push and not image.no_push:
        steps.append(Command("docker", ["push", target], description=f"push image {target}"))
    return steps


async def build_images(
    config: ProjectConfig,
    env: EnvConfig,
    project_root: str | Path,
    *,
    pattern: re.Pattern[str] | str = MATCH_ALL,
    push: bool = False,
    env_name: str = "",
    verbose: bool = False,
) -> list[str]:
    """Build every selected image; returns the built references in order."""
    built: list[str] = []
    for image in select_resources(env.images, config.build.images, pattern):
        target = image.image_name(env)
        source = image.build_from or image.build_src or str(Path(env.image_build_src) / image.name)
        print_title(f"Build Image {image.name} from {source} as {target}", env_name)
        for step in image_build_steps(image, config, env, project_root, push):
            print_line(step.description)
            await execute(step, verbose=verbose)
        built.append(target)
    return built
