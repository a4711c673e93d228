"""projmake rendering module.

Materializes per-environment file trees from template sources.

Key classes:
    TemplateFunctions  - Functions callable from templates (GetImageName, FromSecretEnv, ...)
    TreeRenderer       - Walks a source tree and copies or renders each entry
    ResourceGenerator  - Layered default + environment generation per resource
"""

from .dependencies import CircularDependencyError, check_render_order, scan_dependencies
from .functions import TemplateFunctionError, TemplateFunctions
from .generator import ResourceGenerator, generate_resources
from .tree import (
    DEFAULT_TEMPLATE_PREFIX,
    PatternError,
    RenderError,
    TreeRenderer,
    render_tree,
)

__all__ = [
    # Template functions
    "TemplateFunctions",
    "TemplateFunctionError",
    # Tree rendering
    "TreeRenderer",
    "render_tree",
    "RenderError",
    "PatternError",
    "DEFAULT_TEMPLATE_PREFIX",
    # Generation
    "ResourceGenerator",
    "generate_resources",
    # Dependencies
    "CircularDependencyError",
    "check_render_order",
    "scan_dependencies",
]
