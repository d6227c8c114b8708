# promptshaper/core/context.py
from dataclasses import dataclass, field
from typing import Any, Dict, List

from promptshaper.config.settings import RenderOptions
from promptshaper.core.functions import FunctionRegistry, create_default_registry
from promptshaper.core.loaders.files import FileCache
from promptshaper.core.models import Variable


@dataclass
class ParserContext:
    """
    Mutable state shared by one top-level render.

    `variables` is the outermost scope; callers may seed it before
    rendering and the template's own top-level definitions are added to it.
    Built-in functions append to `attachments`.
    """
    variables: Dict[str, Variable] = field(default_factory=dict)
    options: RenderOptions = field(default_factory=RenderOptions)
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    functions: FunctionRegistry = field(default_factory=create_default_registry)
    file_cache: FileCache = field(default_factory=FileCache)
