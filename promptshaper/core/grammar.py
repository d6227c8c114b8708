# promptshaper/core/grammar.py
"""
Recognises the template surface grammar.

    text        any run without `{`; `\\{` and `\\}` give literal braces
    {{name}}    slot: variable or zero-argument function
    {{name(a, k="v")}}   slot with arguments
    {{@name}}   raw slot, substituted without another parse
    {{x * 2}}   arithmetic slot
    {name = "v"}         single-line definition (string, number or call)
    {name(p, q="d")}...{/name}   multi-line definition with parameters
    {fn("a", 1)}         inline function call

Parsing works on masked, comment-free text; every match records its
offsets in that processed text plus the line/column of the original.
Each tag is matched on its own, so a multi-line body can be validated
separately and kept raw when it does not parse.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import structlog
from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar

from promptshaper.core.comments import strip_comments
from promptshaper.core.expressions import EXPRESSION_RULES, Expression, ExpressionBuilder
from promptshaper.core.masking import MaskTable, mask_code_spans
from promptshaper.core.models import Argument, FunctionCall, Literal, Variable
from promptshaper.core.source import SourceText
from promptshaper.core.syntax import LEXICAL_RULES, from_parse_error, syntax_error, syntax_error_at, unescape_string
from promptshaper.exceptions import MismatchedTagError, TemplateSyntaxError
from promptshaper.util import parse_number

log = structlog.get_logger(__name__)

_CLOSER_RE = re.compile(r"\{[ \t\r\n]*/[ \t\r\n]*([A-Za-z_][A-Za-z0-9_]*)[ \t\r\n]*\}")

TEMPLATE_RULES = r"""
    text                = text_piece+
    text_piece          = escaped_brace / plain_text / lone_backslash
    escaped_brace       = ~r"\\[{}]"
    plain_text          = ~r"[^{\\]+"
    lone_backslash      = "\\"

    tag                 = slot / value_definition / inline_call / block_opener

    slot                = raw_slot / call_slot / name_slot / expression_slot
    raw_slot            = open_slot _ at_sign _ identifier _ close_slot
    call_slot           = open_slot _ identifier _ open_paren _ arguments _ close_paren _ close_slot
    name_slot           = open_slot _ identifier _ close_slot
    expression_slot     = open_slot _ expression _ close_slot

    value_definition    = open_brace _ identifier _ equals _ value _ close_brace
    value               = string / number / call
    call                = identifier _ open_paren _ arguments _ close_paren

    inline_call         = open_brace _ identifier _ open_paren _ literal more_arguments _ close_paren _ close_brace

    block_opener        = open_brace _ identifier _ parameters? _ close_brace
    parameters          = open_paren _ parameter_list? _ close_paren
    parameter_list      = parameter more_parameters
    more_parameters     = (_ comma _ parameter)*
    parameter           = optional_parameter / identifier
    optional_parameter  = identifier _ equals _ literal

    arguments           = (argument more_arguments)?
    more_arguments      = (_ comma _ argument)*
    argument            = named_argument / literal
    named_argument      = identifier _ equals _ literal
    literal             = string / number
"""

TEMPLATE_GRAMMAR = Grammar(TEMPLATE_RULES + EXPRESSION_RULES + LEXICAL_RULES)


class MatchType(Enum):
    TEXT = "text"
    VARIABLE = "variable"
    SLOT = "slot"


@dataclass
class TextMatch:
    text: str  # as written, escapes included.
    value: str  # escapes resolved.
    start: int
    end: int
    line: int
    column: int
    type: MatchType = field(default=MatchType.TEXT, init=False)


@dataclass
class VariableMatch:
    variable: Variable
    text: str
    start: int
    end: int
    line: int
    column: int
    type: MatchType = field(default=MatchType.VARIABLE, init=False)

    @property
    def name(self) -> str:
        return self.variable.name


@dataclass
class SlotMatch:
    text: str
    start: int
    end: int
    line: int
    column: int
    name: Optional[str] = None
    args: List[Argument] = field(default_factory=list)
    raw: bool = False
    expression: Optional[Expression] = None
    inline: bool = False
    type: MatchType = field(default=MatchType.SLOT, init=False)

    def as_call(self) -> FunctionCall:
        return FunctionCall(self.name, list(self.args))


ParserMatch = Union[TextMatch, VariableMatch, SlotMatch]


class TemplateBuilder(ExpressionBuilder):
    """
    Visits one matched tag or text run.

    Slots come back as keyword dicts for SlotMatch, definitions as
    Variables, and block openers as `(name, parameters)` for the parser to
    check and close.
    """

    def visit_text(self, node, visited_children):
        return "".join(visited_children)

    def visit_text_piece(self, node, visited_children):
        return visited_children[0]

    def visit_escaped_brace(self, node, _):
        return node.text[1]

    def visit_plain_text(self, node, _):
        return node.text

    visit_lone_backslash = visit_plain_text

    def visit_tag(self, node, visited_children):
        return visited_children[0]

    visit_slot = visit_tag

    def visit_raw_slot(self, node, visited_children):
        return {"name": visited_children[4], "raw": True}

    def visit_call_slot(self, node, visited_children):
        return {"name": visited_children[2], "args": visited_children[6]}

    def visit_name_slot(self, node, visited_children):
        return {"name": visited_children[2]}

    def visit_expression_slot(self, node, visited_children):
        return {"expression": visited_children[2]}

    def visit_value_definition(self, node, visited_children):
        name, value = visited_children[2], visited_children[6]
        if isinstance(value, FunctionCall):
            return Variable(name=name, content="", call=value)
        return Variable(name=name, content=value)

    def visit_value(self, node, visited_children):
        return visited_children[0]

    def visit_call(self, node, visited_children):
        return FunctionCall(visited_children[0], visited_children[4])

    def visit_inline_call(self, node, visited_children):
        first, rest = visited_children[6], visited_children[7]
        return {"name": visited_children[2], "args": [Argument(value=first)] + rest, "inline": True}

    def visit_block_opener(self, node, visited_children):
        parameters = visited_children[4]
        return visited_children[2], parameters[0] if isinstance(parameters, list) else []

    def visit_parameters(self, node, visited_children):
        parameter_list = visited_children[2]
        return parameter_list[0] if isinstance(parameter_list, list) else []

    def visit_parameter_list(self, node, visited_children):
        first, rest = visited_children
        return [first] + rest

    def visit_more_parameters(self, node, visited_children):
        return [item[-1] for item in visited_children]

    visit_more_arguments = visit_more_parameters

    def visit_parameter(self, node, visited_children):
        # (name, default, has_default, offset of the name in the matched text)
        child = visited_children[0]
        if isinstance(child, tuple):
            return child[0], child[1], True, node.start
        return child, None, False, node.start

    def visit_optional_parameter(self, node, visited_children):
        return visited_children[0], visited_children[4]

    def visit_arguments(self, node, visited_children):
        if not visited_children:
            return []
        first, rest = visited_children[0]
        return [first] + rest

    def visit_argument(self, node, visited_children):
        child = visited_children[0]
        return child if isinstance(child, Argument) else Argument(value=child)

    def visit_named_argument(self, node, visited_children):
        return Argument(value=visited_children[4], name=visited_children[0])

    def visit_literal(self, node, visited_children):
        return visited_children[0]

    def visit_string(self, node, _):
        return unescape_string(node.text)

    def visit_number(self, node, _):
        return parse_number(node.text)


class TemplateParser:
    """
    Parses `source.text[start:end]` into text, variable and slot matches.

    In strict mode a multi-line body that fails to parse raises; otherwise
    the definition is kept as a raw variable holding the body verbatim.
    """

    def __init__(self, source: Union[SourceText, str], start: int = 0, end: Optional[int] = None, strict: bool = False):
        if isinstance(source, str):
            source = SourceText.from_string(source)
        self.source = source
        self.start = start
        self.end = len(source.text) if end is None else end
        self.text = source.text[start:self.end]
        self.pos = 0  # relative to self.text
        self.strict = strict
        self.builder = TemplateBuilder()

    def parse(self) -> List[ParserMatch]:
        matches: List[ParserMatch] = []
        while self.pos < len(self.text):
            if self.text.startswith("{", self.pos):
                matches.append(self._parse_tag())
            else:
                matches.append(self._parse_text())
        return matches

    def _match(self, rule: str):
        try:
            node = TEMPLATE_GRAMMAR[rule].match(self.text, self.pos)
        except ParseError as e:
            raise from_parse_error(e, self.source, base=self.start, limit=self.end) from None
        return node, self.builder.visit(node)

    def _location(self, start: int, end: int) -> dict:
        line, column = self.source.line_column(self.start + start)
        return {
            "text": self.text[start:end],
            "start": self.start + start,
            "end": self.start + end,
            "line": line,
            "column": column,
        }

    def _parse_text(self) -> TextMatch:
        start = self.pos
        node, value = self._match("text")
        self.pos = node.end
        return TextMatch(value=value, **self._location(start, node.end))

    def _parse_tag(self) -> ParserMatch:
        start = self.pos
        node, result = self._match("tag")
        self.pos = node.end
        if isinstance(result, Variable):
            return VariableMatch(variable=result, **self._location(start, node.end))
        if isinstance(result, dict):
            return SlotMatch(**result, **self._location(start, node.end))
        name, parameters = result
        return self._parse_block(name, parameters, start)

    def _check_parameters(self, name: str, parameters) -> Tuple[List[str], Dict[str, Literal]]:
        required: List[str] = []
        optional: Dict[str, Literal] = {}
        for param, default, has_default, offset in parameters:
            if param in required or param in optional:
                raise syntax_error_at(self.source, self.start + offset, f"Duplicate parameter `{param}` in `{name}`")
            if has_default:
                optional[param] = default
            elif optional:
                # required params cannot follow defaulted ones.
                raise syntax_error(self.source, self.start + offset + len(param), ['"="'], self.end)
            else:
                required.append(param)
        return required, optional

    def _parse_block(self, name: str, parameters, start: int) -> VariableMatch:
        required, optional = self._check_parameters(name, parameters)
        open_end = self.pos
        closer = next((c for c in _CLOSER_RE.finditer(self.text, open_end) if c.group(1) == name), None)
        if closer is None:
            other = _CLOSER_RE.search(self.text, open_end)
            if other:
                line, column = self.source.line_column(self.start + other.start())
                raise MismatchedTagError(
                    name, other.group(1), line=line, column=column, offset=self.source.origin_of(self.start + other.start())
                )
            raise syntax_error(self.source, self.end, [f'"{{/{name}}}"'], self.end)

        content_start, content_end = open_end, closer.start()
        if self.text.startswith("\r\n", content_start, content_end):
            content_start += 2
        elif self.text.startswith("\n", content_start, content_end):
            content_start += 1
        if content_end > content_start and self.text[content_end - 1] == "\n":
            content_end -= 1
            if content_end > content_start and self.text[content_end - 1] == "\r":
                content_end -= 1

        raw = False
        try:
            TemplateParser(self.source, self.start + content_start, self.start + content_end, strict=True).parse()
        except TemplateSyntaxError as e:
            if self.strict:
                raise
            log.debug("multiline_variable_kept_raw", name=name, reason=str(e))
            raw = True

        self.pos = closer.end()
        variable = Variable(
            name=name,
            content=self.text[content_start:content_end],
            required_params=required,
            optional_params=optional,
            raw=raw,
        )
        return VariableMatch(variable=variable, **self._location(start, self.pos))


def preprocess(template: str, masks: MaskTable, remove_comments: bool = True) -> SourceText:
    # masks code spans, then strips comments from what is left.
    source = mask_code_spans(SourceText.from_string(template), masks)
    if remove_comments:
        source = strip_comments(source)
    return source


def parse_template(template: str, masks: Optional[MaskTable] = None) -> List[ParserMatch]:
    """Masks, strips comments and parses a template into matches."""
    source = preprocess(template, masks if masks is not None else MaskTable())
    matches = TemplateParser(source).parse()
    log.debug("template_parsed", match_count=len(matches))
    return matches
