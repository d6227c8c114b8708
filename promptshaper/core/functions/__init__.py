# promptshaper/core/functions/__init__.py
"""Registry of functions callable from templates."""
import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from promptshaper.core.functions.builtins import BUILTIN_FUNCTIONS
from promptshaper.core.models import Literal
from promptshaper.core.syntax import IDENTIFIER_RE
from promptshaper.exceptions import FunctionCallError, FunctionRegistryError

log = structlog.get_logger(__name__)

# called as fn(context, *positional, **named); may return an awaitable.
TemplateFunction = Callable[..., Any]


class FunctionRegistry:
    def __init__(self, functions: Optional[Mapping[str, TemplateFunction]] = None):
        self._functions: Dict[str, TemplateFunction] = {}
        for name, fn in (functions or {}).items():
            self.register_function(name, fn)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def names(self) -> List[str]:
        return sorted(self._functions)

    def get(self, name: str) -> Optional[TemplateFunction]:
        return self._functions.get(name)

    def register_function(self, name: str, fn: TemplateFunction):
        if not isinstance(name, str) or not IDENTIFIER_RE.fullmatch(name):
            raise FunctionRegistryError(f"Invalid function name: {name!r}")
        if not callable(fn):
            raise FunctionRegistryError(f"Function {name} is not callable.")
        if name in self._functions:
            raise FunctionRegistryError(f"Function {name} is already registered.")
        self._functions[name] = fn
        log.debug("function_registered", name=name)

    def unregister_function(self, name: str):
        if self._functions.pop(name, None) is not None:
            log.debug("function_unregistered", name=name)

    async def call(self, name: str, context, positional: List[Literal], named: Mapping[str, Literal]) -> Any:
        fn = self._functions.get(name)
        if fn is None:
            raise FunctionRegistryError(f"Function {name} is not registered.")
        try:
            inspect.signature(fn).bind(context, *positional, **named)
        except TypeError as e:
            raise FunctionCallError(f"Invalid arguments for {name}(): {e}") from e
        except ValueError:
            # builtins without an introspectable signature are called as-is.
            pass
        result = fn(context, *positional, **named)
        if inspect.isawaitable(result):
            result = await result
        return result

    def copy(self) -> "FunctionRegistry":
        return FunctionRegistry(self._functions)


def create_default_registry() -> FunctionRegistry:
    return FunctionRegistry(BUILTIN_FUNCTIONS)
