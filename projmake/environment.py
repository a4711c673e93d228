"""Environment resolution and allow-list selection.

An environment's section in ``project.yaml`` is a sparse overlay on the
``default`` section.  :func:`resolve_env` layers the two into the effective
``EnvConfig``; :func:`select_resources` narrows a definition list to the
names an environment allow-lists and the user's ``--filter`` regex accepts.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Protocol, TypeVar

from pydantic import ValidationError

from .config import ConfigError, EnvConfig, ProjectConfig

MATCH_ALL = ".*"


class _Named(Protocol):
    name: str


NamedT = TypeVar("NamedT", bound=_Named)


def _is_set(value: object) -> bool:
    # Empty strings and empty lists count as unset: an override cannot
    # explicitly clear a default value.
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) > 0
    return True


def merge_env(base: EnvConfig, overlay: EnvConfig) -> EnvConfig:
    """Layer *overlay* onto *base* field by field.

    Raises:
        ValidationError: If the merged mapping does not validate.
    """
    merged = base.model_dump()
    for field, value in overlay.model_dump().items():
        if _is_set(value):
            merged[field] = value
    return EnvConfig.model_validate(merged)


def resolve_env(config: ProjectConfig, env_name: str = "") -> EnvConfig:
    """Return the effective configuration for *env_name*.

    An empty or unknown name yields ``config.default`` unchanged.  A merge
    that fails validation also degrades to ``config.default`` instead of
    raising, so callers cannot observe resolution failures.
    """
    if not env_name:
        return config.default
    overlay = config.env.get(env_name)
    if overlay is None:
        return config.default
    try:
        return merge_env(config.default, overlay)
    except ValidationError:
        return config.default


def compile_filter(expression: str = MATCH_ALL) -> re.Pattern[str]:
    """Compile the user-supplied ``--filter`` expression.

    Raises:
        ConfigError: If the expression is not a valid regular expression.
    """
    try:
        return re.compile(expression or MATCH_ALL)
    except re.error as exc:
        raise ConfigError(f"Invalid filter expression {expression!r}: {exc}") from exc


def iter_selected(
    allow_list: Iterable[str],
    definitions: Iterable[NamedT],
    pattern: re.Pattern[str] | str | None = None,
) -> Iterator[NamedT]:
    """Yield definitions in allow-list order.

    A name is selected when it appears in *allow_list*, is matched (searched,
    not anchored) by *pattern*, and has a definition.  Allow-listed names
    without a definition are skipped.
    """
    if pattern is None:
        pattern = MATCH_ALL
    regex = compile_filter(pattern) if isinstance(pattern, str) else pattern
    definitions = list(definitions)
    for name in allow_list:
        if not regex.search(name):
            continue
        for definition in definitions:
            if definition.name == name:
                yield definition


def select_resources(
    allow_list: Iterable[str],
    definitions: Iterable[NamedT],
    pattern: re.Pattern[str] | str | None = None,
) -> list[NamedT]:
    """List form of :func:`iter_selected`."""
    return list(iter_selected(allow_list, definitions, pattern))
