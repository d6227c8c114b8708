# promptshaper/core/models.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

Literal = Union[str, int, float]


@dataclass
class Argument:
    # one argument in a call; `name` is set for `name=value` arguments.
    value: Literal
    name: Optional[str] = None


@dataclass
class FunctionCall:
    name: str
    args: List[Argument] = field(default_factory=list)

    def positional_values(self) -> List[Literal]:
        return [arg.value for arg in self.args if arg.name is None]

    def named_values(self) -> Dict[str, Literal]:
        return {arg.name: arg.value for arg in self.args if arg.name is not None}


@dataclass
class Variable:
    """A named template fragment, or a literal value bound to a parameter."""
    name: str
    content: Literal = ""
    required_params: List[str] = field(default_factory=list)
    optional_params: Dict[str, Literal] = field(default_factory=dict)
    raw: bool = False
    call: Optional[FunctionCall] = None

    @property
    def is_number(self) -> bool:
        return isinstance(self.content, (int, float)) and not isinstance(self.content, bool)

    @property
    def params(self) -> List[str]:
        return self.required_params + list(self.optional_params)
