"""Shared pytest fixtures for the projmake test suite.

Provides reusable fixtures for:
- A sample project descriptor (dict, model and YAML file)
- Source trees for config bundles and Kubernetes templates
- A working directory switched into a temporary project
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import pytest
import yaml

from projmake.config import ProjectConfig


# ---------------------------------------------------------------------------
# Descriptor fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """A descriptor exercising every section, with a sparse ``prod`` overlay."""
    return {
        "product": "acme shop",
        "model": "standard",
        "version": "1.2.0",
        "domain": "acme.example",
        "project": "github.com/acme/shop",
        "default": {
            "config_src": "configs",
            "config_tgt": "dist/configs",
            "configs": ["svc", "gateway"],
            "binary_src": "cmd",
            "binary_tgt": "bin",
            "binaries": ["api", "worker"],
            "binary_build_env": ["CGO_ENABLED=0"],
            "image_build_src": "images",
            "images": ["api"],
            "image_tag": "dev",
            "kubernetes_src": "deploy",
            "kubernetes_tgt": "dist/deploy",
            "kubernetes_templates": ["api"],
        },
        "env": {
            "prod": {
                "config_src": "envs/prod/configs",
                "images": ["api", "worker"],
                "image_prefix": "registry.acme.example/shop",
                "image_tag": "v1",
                "binary_build_args": ["-trimpath"],
            },
            "empty": {},
        },
        "build": {
            "binaries": [
                {"name": "api", "platform": ["linux/amd64", "darwin/arm64"], "config_dir": "/etc/api"},
                {"name": "worker", "src": "cmd/worker-main"},
            ],
            "images": [
                {"name": "api", "base": "$base"},
                {"name": "worker", "repo": "shop-worker", "no_push": True},
                {"name": "base", "build_from": "alpine:3.20", "tag": "3.20"},
            ],
        },
        "generate": {
            "configs": [
                {"name": "svc"},
                {"name": "gateway", "files": ["*.yaml", "*.env"]},
            ],
            "kubernetes": [
                {"name": "api", "files": ["*.yaml"]},
            ],
        },
    }


@pytest.fixture
def project_config(sample_config_dict: dict[str, Any]) -> ProjectConfig:
    return ProjectConfig.model_validate(sample_config_dict)


@pytest.fixture
def descriptor_file(tmp_path: Path, sample_config_dict: dict[str, Any]) -> Path:
    """``project.yaml`` written into a temporary project root."""
    path = tmp_path / "project.yaml"
    path.write_text(yaml.safe_dump(sample_config_dict, sort_keys=False), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Filesystem fixtures
# ---------------------------------------------------------------------------

def write_tree(root: Path, files: dict[str, str | bytes]) -> Path:
    """Create *files* (relative path -> content) under *root*."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def in_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Switch the working directory to the temporary project root."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config_sources(in_project: Path) -> Path:
    """Default and ``prod`` config source trees relative to the project root."""
    write_tree(
        in_project,
        {
            "configs/svc/app.yaml": "port: 8080\n",
            "configs/svc/template.secret.env": textwrap.dedent(
                """\
                # generated
                DB_PASSWORD = s3cret
                API_TOKEN=[[ Name ]]-token
                """
            ),
            "configs/svc/template.settings.json": (
                '{"name": "[[ Name ]]", "db": {"hosts": ["db-0", "db-1"], "port": 5432}}\n'
            ),
            "configs/gateway/template.gateway.yaml": textwrap.dedent(
                """\
                upstream: [[ FromConfigJSON("svc", "settings.json", "db.hosts[0]") ]]
                token: [[ FromSecretEnv("svc", "API_TOKEN") ]]
                """
            ),
            "configs/gateway/notes.txt": "not selected\n",
            "envs/prod/configs/svc/app.yaml": "port: 443\n",
        },
    )
    return in_project


@pytest.fixture
def make_tree():
    """Expose :func:`write_tree` to tests."""
    return write_tree
