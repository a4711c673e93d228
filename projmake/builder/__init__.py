"""projmake builder module.

Builds the binaries and images an environment allow-lists by invoking the Go
toolchain and docker.

Key classes:
    BuildInfo   - Product, project and git metadata injected into binaries
    Command     - One external tool invocation
    BuildError  - Raised when a build step cannot be composed or fails
"""

from .commands import (
    BuildError,
    Command,
    binary_build_command,
    binary_build_commands,
    build_binaries,
    build_images,
    execute,
    image_build_steps,
    resolve_base_image,
)
from .info import BuildInfo, collect_build_info, env_prefix, ldflags

__all__ = [
    # Build metadata
    "BuildInfo",
    "collect_build_info",
    "env_prefix",
    "ldflags",
    # Commands
    "Command",
    "BuildError",
    "execute",
    "binary_build_command",
    "binary_build_commands",
    "build_binaries",
    "image_build_steps",
    "resolve_base_image",
    "build_images",
]
