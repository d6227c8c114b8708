# promptshaper/core/expressions.py
"""
Arithmetic inside `{{...}}` slots.

Precedence, loosest first:

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := "-" unary | power
    power      := primary ("^" unary)?
    primary    := number | identifier | "(" expression ")"

`^` is right-associative and binds tighter than unary minus on its left,
so `-2^2` is -4 while `2^-1` is 0.5.
"""
import math
import operator
from dataclasses import dataclass
from typing import Callable, Union

import structlog
from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from promptshaper.core.source import SourceText
from promptshaper.core.syntax import LEXICAL_RULES, from_parse_error
from promptshaper.exceptions import DivisionByZeroError, EvaluationError
from promptshaper.util import Number, format_number, parse_number

log = structlog.get_logger(__name__)

# exponents above this are computed as floats so huge ints cannot exhaust memory.
_MAX_EXACT_EXPONENT = 1024

EXPRESSION_RULES = r"""
    expression              = term additive_tail
    additive_tail           = (_ additive_operator _ term)*
    additive_operator       = plus / minus
    term                    = unary multiplicative_tail
    multiplicative_tail     = (_ multiplicative_operator _ unary)*
    multiplicative_operator = times / divided_by
    unary                   = negation / power
    negation                = minus _ unary
    power                   = primary power_tail?
    power_tail              = _ caret _ unary
    primary                 = unsigned_number / identifier / group
    group                   = open_paren _ expression _ close_paren
"""

EXPRESSION_GRAMMAR = Grammar(
    r"""
    standalone_expression   = _ expression _
    """
    + EXPRESSION_RULES
    + LEXICAL_RULES
)


@dataclass(frozen=True)
class NumberLiteral:
    value: Number

    def __str__(self):
        return format_number(self.value)


@dataclass(frozen=True)
class NameRef:
    name: str

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class Negate:
    operand: "Expression"

    def __str__(self):
        return f"-{self.operand}"


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: "Expression"
    right: "Expression"

    def __str__(self):
        return f"({self.left} {self.operator} {self.right})"


Expression = Union[NumberLiteral, NameRef, Negate, BinaryOp]


class UnboundName(Exception):
    # raised by resolvers when a name has no binding; the slot stays verbatim.
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


class ExpressionBuilder(NodeVisitor):
    """Turns expression parse trees into Expression nodes. The template grammar extends it."""

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit_identifier(self, node, _):
        return node.text

    def visit_standalone_expression(self, node, visited_children):
        _, expression, _ = visited_children
        return expression

    def _fold(self, first, tail):
        # tail items are [whitespace, operator, whitespace, operand].
        result = first
        for _, op, _, operand in tail:
            result = BinaryOp(op, result, operand)
        return result

    def visit_expression(self, node, visited_children):
        first, tail = visited_children
        return self._fold(first, tail)

    def visit_term(self, node, visited_children):
        first, tail = visited_children
        return self._fold(first, tail)

    def visit_additive_tail(self, node, visited_children):
        return visited_children

    visit_multiplicative_tail = visit_additive_tail

    def visit_additive_operator(self, node, _):
        return node.text

    visit_multiplicative_operator = visit_additive_operator

    def visit_unary(self, node, visited_children):
        return visited_children[0]

    def visit_negation(self, node, visited_children):
        _, _, operand = visited_children
        return Negate(operand)

    def visit_power(self, node, visited_children):
        base, exponent = visited_children
        if not isinstance(exponent, list):
            return base
        return BinaryOp("^", base, exponent[0])

    def visit_power_tail(self, node, visited_children):
        return visited_children[-1]

    def visit_primary(self, node, visited_children):
        child = visited_children[0]
        return NameRef(child) if isinstance(child, str) else child

    def visit_unsigned_number(self, node, _):
        return NumberLiteral(parse_number(node.text))

    def visit_group(self, node, visited_children):
        return visited_children[2]


def parse_expression(text: str) -> Expression:
    """Parses a standalone arithmetic expression; surrounding whitespace is allowed."""
    try:
        tree = EXPRESSION_GRAMMAR["standalone_expression"].parse(text)
    except ParseError as e:
        raise from_parse_error(e, SourceText.from_string(text)) from None
    return ExpressionBuilder().visit(tree)


def _checked(value: Number, description: str) -> Number:
    if isinstance(value, complex):
        raise EvaluationError(f"Result of {description} is not a real number")
    if isinstance(value, float) and not math.isfinite(value):
        raise EvaluationError(f"Numeric overflow in {description}")
    return value


def _power(base: Number, exponent: Number) -> Number:
    if base == 0 and exponent < 0:
        raise DivisionByZeroError()
    if isinstance(exponent, int) and exponent > _MAX_EXACT_EXPONENT and abs(base) > 1:
        base = float(base)
    return base ** exponent


_OPERATIONS = {
    "+": ("addition", operator.add),
    "-": ("subtraction", operator.sub),
    "*": ("multiplication", operator.mul),
    "/": ("division", operator.truediv),
    "^": ("exponentiation", _power),
}


def evaluate(expression: Expression, resolve: Callable[[str], Number]) -> Number:
    """Evaluates an expression; `resolve` maps names to numbers or raises UnboundName."""
    if isinstance(expression, NumberLiteral):
        return expression.value
    if isinstance(expression, NameRef):
        return resolve(expression.name)
    if isinstance(expression, Negate):
        return -evaluate(expression.operand, resolve)

    left = evaluate(expression.left, resolve)
    right = evaluate(expression.right, resolve)
    if expression.operator not in _OPERATIONS:
        raise EvaluationError(f"Unknown operator: {expression.operator}")
    description, operation = _OPERATIONS[expression.operator]
    if expression.operator == "/" and right == 0:
        raise DivisionByZeroError()
    try:
        result = operation(left, right)
    except OverflowError as e:
        # int/float mixes overflow on conversion rather than producing inf.
        raise EvaluationError(f"Numeric overflow in {description}") from e
    return _checked(result, description)
