"""promptshaper: a templating language for assembling LLM prompts."""

__version__ = "0.3.0"

from promptshaper.config.settings import RenderOptions
from promptshaper.core.context import ParserContext
from promptshaper.core.functions import FunctionRegistry, create_default_registry
from promptshaper.core.grammar import parse_template
from promptshaper.core.models import Variable
from promptshaper.core.renderer import MAX_RECURSION_DEPTH, render, render_sync

__all__ = [
    "MAX_RECURSION_DEPTH",
    "FunctionRegistry",
    "ParserContext",
    "RenderOptions",
    "Variable",
    "__version__",
    "create_default_registry",
    "parse_template",
    "render",
    "render_sync",
]
