"""projmake command-line interface.

Usage::

    projmake init
    projmake -e prod build binary -o ./bin
    projmake -e prod build image --push
    projmake -e staging generate config
    projmake -e staging -f '^api' generate -x tmpl. kubernetes -t ./deploy
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from .builder import BuildError, build_binaries, build_images, collect_build_info
from .config import DEFAULT_CONFIG_FILE, ConfigError, ProjectConfig, load_config
from .environment import MATCH_ALL, compile_filter, resolve_env
from .paths import ResourceType, create_env_directories
from .renderer import (
    DEFAULT_TEMPLATE_PREFIX,
    CircularDependencyError,
    RenderError,
    generate_resources,
)
from .utils import console, print_error, print_success, print_summary_table, print_title


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="projmake",
        description="projmake -- scaffold, build and render per-environment project artifacts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  projmake init\n"
            "  projmake -e prod build binary\n"
            "  projmake -e prod generate config\n"
        ),
    )
    parser.add_argument(
        "--config", "-c",
        default=DEFAULT_CONFIG_FILE,
        help=f"Project descriptor path (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--environment", "-e",
        default="",
        help="Environment to operate on (default: the default environment)",
    )
    parser.add_argument(
        "--filter", "-f",
        default=MATCH_ALL,
        help="Only act on resources whose name matches this regex",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Print debug output")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init", help="Create the directory layout of the environments")

    build = commands.add_parser("build", help="Build binaries or images")
    build_targets = build.add_subparsers(dest="target", required=True)
    binary = build_targets.add_parser("binary", help="Build Go binaries")
    binary.add_argument("--output", "-o", default="", help="Binary output directory")
    for flag in ("product-model", "product-version", "build-version", "build-type", "build-date"):
        binary.add_argument(f"--{flag}", default="", help=f"Override {flag.replace('-', ' ')}")
    image = build_targets.add_parser("image", help="Build container images")
    image.add_argument("--push", "-p", action="store_true", help="Push images after building")

    generate = commands.add_parser("generate", help="Render config bundles or Kubernetes templates")
    generate.add_argument(
        "--prefix", "-x",
        default=DEFAULT_TEMPLATE_PREFIX,
        help=f"Base-name prefix marking template files (default: {DEFAULT_TEMPLATE_PREFIX})",
    )
    generate_targets = generate.add_subparsers(dest="target", required=True)
    gen_config = generate_targets.add_parser("config", help="Render config bundles")
    gen_config.add_argument("--output", "-o", default="", help="Rendered config output directory")
    gen_kube = generate_targets.add_parser("kubernetes", help="Render Kubernetes templates")
    gen_kube.add_argument("--output", "-t", default="", help="Rendered template output directory")

    return parser


def _run_init(config: ProjectConfig, env_name: str) -> None:
    print_title("initializing project directories", env_name)
    create_env_directories("default", config.default)
    if env_name:
        create_env_directories(env_name, resolve_env(config, env_name))
    else:
        for name in config.env:
            create_env_directories(name, resolve_env(config, name))


def _run_build(args: argparse.Namespace, config: ProjectConfig) -> None:
    env = resolve_env(config, args.environment)
    pattern = compile_filter(args.filter)
    project_root = Path(args.config).resolve().parent

    if args.target == "binary":
        overrides = {
            "product_model": args.product_model,
            "product_version": args.product_version,
            "build_version": args.build_version,
            "build_type": args.build_type,
            "build_date": args.build_date,
        }
        info = asyncio.run(collect_build_info(config, project_root, **overrides))
        asyncio.run(
            build_binaries(
                config, env, info,
                pattern=pattern,
                output=args.output,
                env_name=args.environment,
                verbose=args.verbose,
            )
        )
    else:
        asyncio.run(
            build_images(
                config, env, project_root,
                pattern=pattern,
                push=args.push,
                env_name=args.environment,
                verbose=args.verbose,
            )
        )


def _run_generate(args: argparse.Namespace, config: ProjectConfig) -> None:
    env = resolve_env(config, args.environment)
    kind = ResourceType.CONFIGS if args.target == "config" else ResourceType.KUBERNETES
    results = generate_resources(
        config, env, kind,
        env_name=args.environment,
        prefix=args.prefix,
        pattern=compile_filter(args.filter),
        output=args.output,
        base_dir=Path(args.config).resolve().parent,
        verbose=args.verbose,
    )
    total = sum(len(paths) for paths in results.values())
    if results:
        print_summary_table(
            {name: f"{len(paths)} files" for name, paths in results.items()},
            title=f"Generated {kind.value}",
        )
    print_success(f"Generated {total} files for {len(results)} {kind.value}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``projmake``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        if args.command == "init":
            _run_init(config, args.environment)
        elif args.command == "build":
            _run_build(args, config)
        else:
            _run_generate(args, config)
    except (ConfigError, RenderError, CircularDependencyError, BuildError) as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)
    except OSError as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[bold yellow]Interrupted.[/bold yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
