# promptshaper/core/syntax.py
"""
Lexical rules shared by the template and expression grammars, and the
conversion of parsimonious parse failures into TemplateSyntaxError.

Every punctuation mark is its own named rule: parsimonious only reports
named expressions once one has failed, so unnamed literals would hide the
furthest point the parse reached.
"""
import re
from typing import List, Optional

from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.expressions import Literal as LiteralExpression

from promptshaper.core.masking import PLACEHOLDER_OPEN
from promptshaper.core.source import SourceText
from promptshaper.exceptions import TemplateSyntaxError

IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

LEXICAL_RULES = r"""
    string           = ~r'"(?:[^"\\]|\\["\\nt{}])*"'
    number           = ~r"-?\d+(?:\.\d+)?"
    unsigned_number  = ~r"\d+(?:\.\d+)?"
    identifier       = ~r"[A-Za-z_][A-Za-z0-9_]*"
    _                = ~r"[ \t\r\n]*"

    open_slot        = "{{"
    close_slot       = "}}"
    open_brace       = "{"
    close_brace      = "}"
    open_paren       = "("
    close_paren      = ")"
    comma            = ","
    equals           = "="
    at_sign          = "@"
    plus             = "+"
    minus            = "-"
    times            = "*"
    divided_by       = "/"
    caret            = "^"
"""

_RULE_LABELS = {
    "_": "whitespace",
    "string": "string",
    "number": "number",
    "unsigned_number": "number",
    "identifier": "identifier",
}

_STRING_ESCAPE_RE = re.compile(r"\\(.)")
_STRING_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t", "{": "{", "}": "}"}


def unescape_string(token: str) -> str:
    # token includes the surrounding quotes; the grammar only admits known escapes.
    return _STRING_ESCAPE_RE.sub(lambda m: _STRING_ESCAPES[m.group(1)], token[1:-1])


def describe_rule(expression) -> str:
    if isinstance(expression, LiteralExpression):
        return f'"{expression.literal}"'
    name = expression.name
    return _RULE_LABELS.get(name, name.replace("_", " "))


def _describe_expected(expected: List[str]) -> str:
    if not expected:
        return "end of input"
    if len(expected) == 1:
        return expected[0]
    return ", ".join(expected[:-1]) + " or " + expected[-1]


def syntax_error(source: SourceText, pos: int, expected: List[str], limit: Optional[int] = None) -> TemplateSyntaxError:
    """
    Builds `Syntax error at line L column C: Expected ... but "x" found.`

    `pos` is an offset into `source.text`; `limit` bounds the region being
    parsed, so a failure at it is reported as end of input.
    """
    limit = len(source.text) if limit is None else limit
    if pos >= limit:
        found = None
        found_desc = "end of input"
    else:
        found = source.text[pos]
        found_desc = "code span" if found == PLACEHOLDER_OPEN else f'"{found}"'
    line, column = source.line_column(pos)
    message = (
        f"Syntax error at line {line} column {column}: "
        f"Expected {_describe_expected(expected)} but {found_desc} found."
    )
    return TemplateSyntaxError(
        message, line=line, column=column, offset=source.origin_of(pos), expected=expected, found=found
    )


def syntax_error_at(source: SourceText, pos: int, message: str) -> TemplateSyntaxError:
    line, column = source.line_column(pos)
    return TemplateSyntaxError(
        f"Syntax error at line {line} column {column}: {message}",
        line=line,
        column=column,
        offset=source.origin_of(pos),
        found=source.text[pos] if pos < len(source.text) else None,
    )


def from_parse_error(error: ParseError, source: SourceText, base: int = 0, limit: Optional[int] = None) -> TemplateSyntaxError:
    """Translates a parsimonious failure in `source.text[base:limit]` into a positioned TemplateSyntaxError."""
    if isinstance(error, IncompleteParseError):
        expected: List[str] = []
    elif error.expr is not None:
        expected = [describe_rule(error.expr)]
    else:
        expected = []
    return syntax_error(source, base + max(error.pos, 0), expected, limit)
