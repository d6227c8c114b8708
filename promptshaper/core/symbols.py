# promptshaper/core/symbols.py
import json
from collections import ChainMap
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

import structlog

from promptshaper.core.functions import FunctionRegistry
from promptshaper.core.grammar import MatchType, ParserMatch
from promptshaper.core.models import Argument, Literal, Variable
from promptshaper.core.syntax import IDENTIFIER_RE
from promptshaper.exceptions import BindingError, MissingParameterError, VariableConflictError

log = structlog.get_logger(__name__)


class SymbolTable:
    """
    Scoped name -> Variable lookup.

    The outermost scope is the caller's variables mapping, so definitions
    made by the top-level template land there. Expanding a variable opens a
    child scope holding its bound parameters and its own definitions.
    """

    def __init__(self, variables: Optional[MutableMapping[str, Variable]] = None, functions: Optional[FunctionRegistry] = None, _scopes: Optional[ChainMap] = None):
        if _scopes is None:
            _scopes = ChainMap(variables if variables is not None else {})
        self._scopes = _scopes
        self.functions = functions if functions is not None else FunctionRegistry()

    @property
    def depth(self) -> int:
        return len(self._scopes.maps)

    def __contains__(self, name: str) -> bool:
        return name in self._scopes

    def lookup(self, name: str) -> Optional[Variable]:
        return self._scopes.get(name)

    def names(self) -> List[str]:
        return sorted(self._scopes)

    def child(self, bindings: Optional[Mapping[str, Variable]] = None) -> "SymbolTable":
        return SymbolTable(functions=self.functions, _scopes=self._scopes.new_child(dict(bindings or {})))

    def define(self, variable: Variable):
        if variable.name in self.functions:
            raise VariableConflictError(variable.name, with_function=True)
        if variable.name in self._scopes.maps[0]:
            raise VariableConflictError(variable.name)
        self._scopes.maps[0][variable.name] = variable
        log.debug("variable_defined", name=variable.name, raw=variable.raw, scope_depth=self.depth)

    def define_all(self, matches: Iterable[ParserMatch]) -> int:
        # definitions are registered in source order; references resolve later.
        count = 0
        for match in matches:
            if match.type == MatchType.VARIABLE:
                self.define(match.variable)
                count += 1
        return count


def bind_parameters(variable: Variable, args: List[Argument]) -> Dict[str, Variable]:
    """
    Binds call arguments to a variable's declared parameters.

    Positional arguments fill required then optional params in declared
    order, named arguments bind by name, and declared defaults fill the rest.
    """
    params = variable.params
    bound: Dict[str, Literal] = {}

    positional = [arg.value for arg in args if arg.name is None]
    if len(positional) > len(params):
        raise BindingError(
            f"Too many params for `{variable.name}`: expected at most {len(params)}, got {len(positional)}"
        )
    bound.update(zip(params, positional))

    for arg in args:
        if arg.name is None:
            continue
        if arg.name not in params:
            raise BindingError(f"Unknown param for `{variable.name}`: `{arg.name}`")
        if arg.name in bound:
            raise BindingError(f"Param for `{variable.name}` given more than once: `{arg.name}`")
        bound[arg.name] = arg.value

    for param in variable.required_params:
        if param not in bound:
            raise MissingParameterError(variable.name, param)
    for param, default in variable.optional_params.items():
        bound.setdefault(param, default)

    return {name: Variable(name=name, content=value) for name, value in bound.items()}


def variables_from_mapping(data: Mapping[str, Any]) -> Dict[str, Variable]:
    # plain values (cli --var/--json, config tables) become string variables.
    variables: Dict[str, Variable] = {}
    for key, value in data.items():
        if not IDENTIFIER_RE.fullmatch(str(key)):
            log.warning("skipping_variable_with_invalid_name", name=key)
            continue
        content = value if isinstance(value, str) else json.dumps(value)
        variables[key] = Variable(name=key, content=content)
    return variables
