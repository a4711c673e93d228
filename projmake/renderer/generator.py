"""Per-environment generation of config bundles and Kubernetes templates.

Takes the project descriptor and an effective environment, selects the
resources the environment allow-lists, and renders each one from its source
layers (defaults first, then the environment's own tree) into a single
destination directory per resource.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path

from ..config import EnvConfig, ProjectConfig, ResourceDefinition
from ..environment import MATCH_ALL, select_resources
from ..paths import ResourceType, resource_output_root, resource_sources
from ..utils import print_debug, print_title, print_warning
from .dependencies import check_render_order, scan_dependencies
from .functions import TemplateFunctions
from .tree import DEFAULT_TEMPLATE_PREFIX, RenderError, TreeRenderer

_LABELS: dict[ResourceType, str] = {
    ResourceType.CONFIGS: "config",
    ResourceType.KUBERNETES: "kubernetes template",
}


class ResourceGenerator:
    """Renders every selected resource of one kind for one environment.

    Args:
        config: The loaded project descriptor.
        env: The effective environment (see ``resolve_env``).
        env_name: Name of the selected environment, used for output only.
        prefix: Base-name prefix marking template files.
        config_root: Where rendered config bundles live, for the
            cross-resource template functions.  Defaults to the output root
            of config resources.
        base_dir: Directory ``FromFile`` resolves relative paths against.
    """

    def __init__(
        self,
        config: ProjectConfig,
        env: EnvConfig,
        *,
        env_name: str = "",
        prefix: str = DEFAULT_TEMPLATE_PREFIX,
        config_root: str | Path | None = None,
        base_dir: str | Path | None = None,
        verbose: bool = False,
    ) -> None:
        self.config = config
        self.env = env
        self.env_name = env_name
        self.prefix = prefix
        self.verbose = verbose
        if config_root is None:
            config_root = resource_output_root(env, ResourceType.CONFIGS)
        self.functions = TemplateFunctions(config, env, config_root=config_root, base_dir=base_dir)
        self.renderer = TreeRenderer(self.functions, prefix, env_name=env_name, verbose=verbose)

    # -- Selection ---------------------------------------------------------

    def selected(
        self, kind: ResourceType, pattern: re.Pattern[str] | str = MATCH_ALL
    ) -> list[ResourceDefinition]:
        if kind is ResourceType.CONFIGS:
            return select_resources(self.env.configs, self.config.generate.configs, pattern)
        if kind is ResourceType.KUBERNETES:
            return select_resources(
                self.env.kubernetes_templates, self.config.generate.kubernetes, pattern
            )
        raise ValueError(f"{kind.value} resources are built, not generated")

    # -- Generation --------------------------------------------------------

    def generate_resource(
        self, kind: ResourceType, resource: ResourceDefinition, output_root: Path
    ) -> list[Path]:
        """Render every existing source layer of *resource* into ``<output_root>/<name>``.

        The destination is removed first, so output from a previous run never
        survives, even when the resource no longer has any source layer.
        Each existing layer then overlays the ones before it.

        Raises:
            RenderError: If the old destination cannot be removed.
        """
        destination = output_root / resource.name
        if destination.exists():
            print_debug(f"remove {destination}", self.env_name, self.verbose)
            try:
                shutil.rmtree(destination)
            except OSError as exc:
                raise RenderError(
                    f"failed to clean {destination}: {exc}", resource=resource.name, path=destination
                ) from exc

        written: list[Path] = []
        for layer in resource_sources(self.config, self.env, kind, resource.name, resource.src):
            if not layer.is_dir():
                print_debug(f"no {_LABELS[kind]} source at {layer}", self.env_name, self.verbose)
                continue
            print_title(f"Generate {_LABELS[kind]} {resource.name} from {layer}", self.env_name)
            written.extend(
                self.renderer.render(
                    resource.name, layer, destination, resource.files, clean=False
                )
            )
        return written

    def generate(
        self,
        kind: ResourceType,
        pattern: re.Pattern[str] | str = MATCH_ALL,
        output: str | Path = "",
    ) -> dict[str, list[Path]]:
        """Generate all selected resources of *kind*.

        Config resources are checked for cyclic ``FromConfig*``/``FromSecretEnv``
        references before the first one is rendered.

        Returns:
            Mapping of resource name to the files written for it.

        Raises:
            CircularDependencyError: If selected config resources read each
                other in a cycle.
            RenderError: On the first rendering failure.
        """
        resources = self.selected(kind, pattern)
        output_root = resource_output_root(self.env, kind, output)

        if kind is ResourceType.CONFIGS:
            self._check_dependencies(kind, resources)

        results: dict[str, list[Path]] = {}
        for resource in resources:
            results.setdefault(resource.name, []).extend(
                self.generate_resource(kind, resource, output_root)
            )
        return results

    def _check_dependencies(self, kind: ResourceType, resources: list[ResourceDefinition]) -> None:
        order = [resource.name for resource in resources]
        dependencies = {
            resource.name: scan_dependencies(
                resource_sources(self.config, self.env, kind, resource.name, resource.src),
                self.prefix,
            )
            for resource in resources
        }
        for name, dep in check_render_order(order, dependencies):
            print_warning(
                f"config {name} reads from {dep}, which is generated after it; "
                f"{name} will see the output of a previous run"
            )


def generate_resources(
    config: ProjectConfig,
    env: EnvConfig,
    kind: ResourceType,
    *,
    env_name: str = "",
    prefix: str = DEFAULT_TEMPLATE_PREFIX,
    pattern: re.Pattern[str] | str = MATCH_ALL,
    output: str | Path = "",
    base_dir: str | Path | None = None,
    verbose: bool = False,
) -> dict[str, list[Path]]:
    """Convenience wrapper around :class:`ResourceGenerator`.

    Rendering configs into an explicit *output* also points the
    ``FromConfig*`` functions at that directory.  *base_dir* is where
    ``FromFile`` resolves relative paths; the CLI passes the descriptor's
    directory.
    """
    config_root = None
    if kind is ResourceType.CONFIGS and output:
        config_root = output
    generator = ResourceGenerator(
        config, env,
        env_name=env_name,
        prefix=prefix,
        config_root=config_root,
        base_dir=base_dir,
        verbose=verbose,
    )
    return generator.generate(kind, pattern, output)
