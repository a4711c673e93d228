"""Tests for layered resource generation (projmake.renderer.generator)."""

from __future__ import annotations

from pathlib import Path

import pytest

from projmake.config import ProjectConfig
from projmake.environment import resolve_env
from projmake.paths import ResourceType
from projmake.renderer.dependencies import CircularDependencyError
from projmake.renderer.generator import ResourceGenerator, generate_resources
from projmake.renderer.tree import RenderError

pytestmark = pytest.mark.unit


class TestConfigGeneration:
    def test_default_environment(self, project_config: ProjectConfig, config_sources: Path):
        results = generate_resources(project_config, project_config.default, ResourceType.CONFIGS)
        assert list(results) == ["svc", "gateway"]

        out = config_sources / "dist" / "configs"
        assert (out / "svc" / "app.yaml").read_text(encoding="utf-8") == "port: 8080\n"
        assert (out / "svc" / "secret.env").read_text(encoding="utf-8") == (
            "# generated\nDB_PASSWORD = s3cret\nAPI_TOKEN=svc-token\n"
        )
        # gateway reads svc's rendered output
        assert (out / "gateway" / "gateway.yaml").read_text(encoding="utf-8") == (
            "upstream: db-0\ntoken: svc-token\n"
        )
        # excluded by the gateway inclusion globs
        assert not (out / "gateway" / "notes.txt").exists()

    def test_environment_layer_overlays_default(self, project_config: ProjectConfig, config_sources: Path):
        env = resolve_env(project_config, "prod")
        generate_resources(project_config, env, ResourceType.CONFIGS, env_name="prod", pattern="^svc$")
        out = config_sources / "dist" / "configs" / "svc"
        assert (out / "app.yaml").read_text(encoding="utf-8") == "port: 443\n"
        assert (out / "settings.json").exists()

    def test_output_override_used_for_cross_reads(self, project_config: ProjectConfig, config_sources: Path):
        generate_resources(
            project_config, project_config.default, ResourceType.CONFIGS, output="custom"
        )
        assert (config_sources / "custom" / "gateway" / "gateway.yaml").exists()
        assert not (config_sources / "dist").exists()

    def test_filter_limits_resources(self, project_config: ProjectConfig, config_sources: Path):
        results = generate_resources(
            project_config, project_config.default, ResourceType.CONFIGS, pattern="^svc"
        )
        assert list(results) == ["svc"]

    def test_dependency_on_ungenerated_resource_fails(self, project_config: ProjectConfig, config_sources: Path):
        with pytest.raises(RenderError, match="svc"):
            generate_resources(
                project_config, project_config.default, ResourceType.CONFIGS, pattern="gateway"
            )

    def test_stale_output_removed(self, project_config: ProjectConfig, config_sources: Path, make_tree):
        make_tree(config_sources, {"dist/configs/svc/stale.txt": "old"})
        generate_resources(project_config, project_config.default, ResourceType.CONFIGS, pattern="^svc$")
        assert not (config_sources / "dist" / "configs" / "svc" / "stale.txt").exists()

    def test_missing_sources_skipped(self, project_config: ProjectConfig, in_project: Path):
        results = generate_resources(project_config, project_config.default, ResourceType.CONFIGS)
        assert results == {"svc": [], "gateway": []}

    def test_stale_output_removed_without_sources(
        self, project_config: ProjectConfig, in_project: Path, make_tree
    ):
        make_tree(in_project, {"dist/configs/svc/stale.txt": "old"})
        results = generate_resources(
            project_config, project_config.default, ResourceType.CONFIGS, pattern="^svc$"
        )
        assert results == {"svc": []}
        assert not (in_project / "dist" / "configs" / "svc").exists()

    def test_from_file_relative_to_base_dir(self, project_config: ProjectConfig, in_project: Path, make_tree):
        make_tree(
            in_project,
            {
                "project/shared/banner.txt": "hello\n",
                "configs/svc/template.motd": '[[ FromFile("shared/banner.txt") ]]',
            },
        )
        generate_resources(
            project_config, project_config.default, ResourceType.CONFIGS,
            pattern="^svc$",
            base_dir=in_project / "project",
        )
        assert (in_project / "dist" / "configs" / "svc" / "motd").read_text(encoding="utf-8") == "hello\n"

    def test_cycle_rejected_before_rendering(self, project_config: ProjectConfig, in_project: Path, make_tree):
        make_tree(
            in_project,
            {
                "configs/svc/template.a.yaml": '[[ FromConfigFile("gateway", "b.yaml") ]]',
                "configs/gateway/template.b.yaml": '[[ FromConfigFile("svc", "a.yaml") ]]',
            },
        )
        with pytest.raises(CircularDependencyError):
            generate_resources(project_config, project_config.default, ResourceType.CONFIGS)
        assert not (in_project / "dist").exists()


class TestKubernetesGeneration:
    def test_templates_rendered(self, project_config: ProjectConfig, in_project: Path, make_tree):
        make_tree(
            in_project,
            {
                "deploy/api/template.deployment.yaml": (
                    'image: [[ GetImageName("api") ]]\nconfigDir: [[ GetConfigDir("api") ]]\n'
                ),
                "deploy/api/README.md": "skip me\n",
            },
        )
        env = resolve_env(project_config, "prod")
        results = generate_resources(project_config, env, ResourceType.KUBERNETES, env_name="prod")
        out = in_project / "dist" / "deploy" / "api"
        assert results == {"api": [Path("dist/deploy/api/deployment.yaml")]}
        assert (out / "deployment.yaml").read_text(encoding="utf-8") == (
            "image: registry.acme.example/shop/api:v1\nconfigDir: /etc/api\n"
        )

    def test_built_kinds_rejected(self, project_config: ProjectConfig):
        generator = ResourceGenerator(project_config, project_config.default)
        with pytest.raises(ValueError):
            generator.selected(ResourceType.IMAGES)
