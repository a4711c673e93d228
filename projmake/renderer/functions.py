"""Functions callable from inside rendered templates.

``TemplateFunctions`` binds the project descriptor, the effective environment
and the rendered-config root explicitly, then exposes a fixed set of named
callables to the template engine.  Several of them read files that an
earlier ``generate config`` run already materialized, so templates can pull
values (secrets, generated JSON) across resources.

Failures that would otherwise produce a plausible-looking but wrong artifact
raise ``TemplateFunctionError``; the tree renderer turns it into a
``RenderError`` and aborts the whole run.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import jmespath
from jmespath.exceptions import JMESPathError

from ..builder.info import env_prefix
from ..config import EnvConfig, ProjectConfig

SECRET_ENV_FILE = "secret.env"


class TemplateFunctionError(Exception):
    """Raised by a template function that cannot produce a trustworthy value."""

    def __init__(
        self,
        message: str,
        resource: str = "",
        filename: str | Path = "",
        key: str = "",
    ) -> None:
        self.resource = resource
        self.filename = str(filename)
        self.key = key
        super().__init__(message)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_env_lines(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines.

    Blank lines and lines starting with ``#`` are ignored, lines without
    ``=`` are skipped, and the first ``=`` separates key from value.  Keys
    and values are stripped; a later assignment of the same key wins.
    """
    values: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        values[key.strip()] = value.strip()
    return values


def query_json(document: Any, expression: str) -> Any:
    """Evaluate a JMESPath *expression* against *document*.

    ``db.hosts[0]``, ``length(db.hosts)`` and ``"a.b"`` (a key containing a
    dot) are typical queries.  Returns ``None`` when the expression is empty,
    malformed or does not resolve.
    """
    if not expression:
        return None
    try:
        return jmespath.search(expression, document)
    except JMESPathError:
        return None


def json_value_string(value: Any) -> str:
    """Stringify a JSON value: strings raw, ``null`` empty, the rest as JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TemplateFunctions:
    """Template function registry bound to one project and environment.

    Args:
        config: The loaded project descriptor.
        env: The effective environment configuration.
        config_root: Directory holding rendered config resources; defaults to
            ``env.config_tgt``.
        base_dir: Directory against which ``FromFile`` resolves relative paths;
            defaults to the process working directory.
    """

    def __init__(
        self,
        config: ProjectConfig,
        env: EnvConfig,
        config_root: str | Path | None = None,
        base_dir: str | Path | None = None,
    ) -> None:
        self.config = config
        self.env = env
        self.config_root = Path(config_root if config_root is not None else env.config_tgt)
        self.base_dir = Path(base_dir) if base_dir is not None else None

    # -- Lookups -----------------------------------------------------------

    def get_env_key(self, key: str) -> str:
        """Prefix *key* with the product's environment-variable prefix."""
        prefix = env_prefix(self.config.product)
        if not prefix:
            return key
        return f"{prefix}_{key}"

    def get_config_dir(self, binary_name: str) -> str:
        """Return the configured ``config_dir`` of a binary, or ``""``."""
        binary = self.config.find_binary(binary_name)
        return binary.config_dir if binary else ""

    def get_image_name(self, image_name: str) -> str:
        """Return the fully qualified reference of an image, or ``""``."""
        image = self.config.find_image(image_name)
        return image.image_name(self.env) if image else ""

    # -- File readers ------------------------------------------------------

    def from_file(self, path: str) -> str:
        """Return the full text of *path*."""
        file_path = Path(path)
        if self.base_dir is not None and not file_path.is_absolute():
            file_path = self.base_dir / file_path
        try:
            return file_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateFunctionError(
                f"failed to render from file {path}: {exc}", filename=path
            ) from exc

    def _read_config_output(self, resource: str, filename: str) -> str:
        file_path = self.config_root / resource / filename
        try:
            return file_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateFunctionError(
                f"failed to render from config {resource} file {filename}: {exc}",
                resource=resource,
                filename=file_path,
            ) from exc

    def from_config_file(self, resource: str, filename: str) -> str:
        """Return a file from the rendered output of config *resource*."""
        return self._read_config_output(resource, filename)

    def from_config_json(self, resource: str, filename: str, query: str) -> str:
        """Extract one value from a rendered JSON config file with a JMESPath query.

        Only the file read is fatal: a query that does not resolve or a
        document that is not valid JSON yields ``""``.
        """
        text = self._read_config_output(resource, filename)
        try:
            document = json.loads(text)
        except json.JSONDecodeError:
            return ""
        return json_value_string(query_json(document, query))

    def from_secret_env(self, resource: str, key: str) -> str:
        """Return *key* from the rendered ``secret.env`` of config *resource*."""
        file_path = self.config_root / resource / SECRET_ENV_FILE
        try:
            text = file_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateFunctionError(
                f"failed to render from {resource} {SECRET_ENV_FILE}: {exc}",
                resource=resource,
                filename=file_path,
                key=key,
            ) from exc
        values = parse_env_lines(text)
        if key not in values:
            raise TemplateFunctionError(
                f"failed to render from {resource} {SECRET_ENV_FILE}: key {key} not found",
                resource=resource,
                filename=file_path,
                key=key,
            )
        return values[key]

    # -- Engine binding ----------------------------------------------------

    def as_globals(self) -> dict[str, Callable[..., str]]:
        """Return the functions under the names templates call them by."""
        return {
            "GetEnvKey": self.get_env_key,
            "GetConfigDir": self.get_config_dir,
            "GetImageName": self.get_image_name,
            "FromFile": self.from_file,
            "FromConfigFile": self.from_config_file,
            "FromConfigJSON": self.from_config_json,
            "FromSecretEnv": self.from_secret_env,
        }
