# promptshaper/core/renderer.py
"""
Recursive expansion of parsed templates.

Each level turns its matches into a skeleton (text kept, definitions
dropped, slots marked), then replaces the slot markers right to left so
offsets to the left stay valid. Expanding a variable renders its content
as the next level inside a child scope; past MAX_RECURSION_DEPTH the text
is returned as-is, which ends self and mutual references.
"""
import asyncio
import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from promptshaper.core.context import ParserContext
from promptshaper.core.expressions import UnboundName, evaluate
from promptshaper.core.grammar import MatchType, ParserMatch, SlotMatch, TemplateParser, preprocess
from promptshaper.core.masking import MaskTable, mask_code_spans
from promptshaper.core.models import Argument, FunctionCall, Literal, Variable
from promptshaper.core.source import SourceText
from promptshaper.core.symbols import SymbolTable, bind_parameters, variables_from_mapping
from promptshaper.exceptions import EvaluationError, TemplateSyntaxError
from promptshaper.util import Number, format_number, parse_number, replace_at_location

log = structlog.get_logger(__name__)

MAX_RECURSION_DEPTH = 5

_DEFINITION_MARK = "\ue002"
_SLOT_OPEN = "\ue003"
_SLOT_CLOSE = "\ue004"
_SLOT_MARK_RE = re.compile(f"{_SLOT_OPEN}(\\d+){_SLOT_CLOSE}")
# a line holding nothing but definitions disappears with its line break.
_STANDALONE_DEFINITIONS_RE = re.compile(
    f"^[ \\t]*(?:{_DEFINITION_MARK}[ \\t]*)+(?:\\r?\\n|\\Z)", re.MULTILINE
)


def build_skeleton(matches: List[ParserMatch]) -> Tuple[str, List[SlotMatch]]:
    pieces = []
    slots: List[SlotMatch] = []
    for match in matches:
        if match.type == MatchType.TEXT:
            pieces.append(match.value)
        elif match.type == MatchType.VARIABLE:
            pieces.append(_DEFINITION_MARK)
        else:
            pieces.append(f"{_SLOT_OPEN}{len(slots)}{_SLOT_CLOSE}")
            slots.append(match)
    skeleton = _STANDALONE_DEFINITIONS_RE.sub("", "".join(pieces))
    return skeleton.replace(_DEFINITION_MARK, ""), slots


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    return str(value)


class Renderer:
    def __init__(self, context: ParserContext):
        self.context = context
        self.masks = MaskTable()
        loose_values = {k: v for k, v in context.variables.items() if not isinstance(v, Variable)}
        context.variables.update(variables_from_mapping(loose_values))
        # seeds obey the same naming rules as definitions made in the template.
        seeds = SymbolTable(functions=context.functions)
        for variable in context.variables.values():
            seeds.define(variable)

    def _trace(self, event: str, **kw):
        if self.context.options.show_debug_messages:
            log.info(event, **kw)
        else:
            log.debug(event, **kw)

    async def render(self, template: str) -> Union[str, List[ParserMatch]]:
        source = preprocess(template, self.masks)
        matches = TemplateParser(source).parse()
        self._trace("template_parsed", match_count=len(matches))
        if self.context.options.return_parser_matches:
            return [self._unmask_match(match) for match in matches]
        symbols = SymbolTable(self.context.variables, self.context.functions)
        try:
            rendered = await self._render_matches(matches, symbols, depth=1)
        finally:
            # placeholders only mean something to this renderer's mask table.
            self.context.variables.update(
                {name: self._unmask_variable(variable) for name, variable in self.context.variables.items()}
            )
        return self.masks.restore(rendered)

    def _unmask(self, value: Literal) -> Literal:
        return self.masks.restore(value) if isinstance(value, str) else value

    def _unmask_arguments(self, args: List[Argument]) -> List[Argument]:
        return [Argument(value=self._unmask(arg.value), name=arg.name) for arg in args]

    def _unmask_variable(self, variable: Variable) -> Variable:
        call = variable.call
        if call is not None:
            call = FunctionCall(call.name, self._unmask_arguments(call.args))
        return replace(
            variable,
            content=self._unmask(variable.content),
            optional_params={name: self._unmask(value) for name, value in variable.optional_params.items()},
            call=call,
        )

    def _unmask_match(self, match: ParserMatch) -> ParserMatch:
        if match.type == MatchType.TEXT:
            return replace(match, text=self._unmask(match.text), value=self._unmask(match.value))
        if match.type == MatchType.VARIABLE:
            return replace(match, text=self._unmask(match.text), variable=self._unmask_variable(match.variable))
        return replace(match, text=self._unmask(match.text), args=self._unmask_arguments(match.args))

    async def _render_text(self, text: str, symbols: SymbolTable, depth: int) -> str:
        if depth > MAX_RECURSION_DEPTH:
            self._trace("max_recursion_depth_reached", depth=depth)
            return text
        source = mask_code_spans(SourceText.from_string(text), self.masks)
        matches = TemplateParser(source).parse()
        return await self._render_matches(matches, symbols, depth)

    async def _render_matches(self, matches: List[ParserMatch], symbols: SymbolTable, depth: int) -> str:
        symbols.define_all(matches)
        skeleton, slots = build_skeleton(matches)
        if not slots:
            return skeleton

        per_slot_attachments: List[List[Dict[str, Any]]] = [[] for _ in slots]
        result = skeleton
        for marker in reversed(list(_SLOT_MARK_RE.finditer(skeleton))):
            index = int(marker.group(1))
            value, attachments = await self._render_slot_isolated(slots[index], symbols, depth)
            per_slot_attachments[index] = attachments
            result = replace_at_location(result, value, marker.start(), marker.end())

        # slots ran right to left; attachments keep the left-to-right order of the text.
        for attachments in per_slot_attachments:
            self.context.attachments.extend(attachments)
        return result

    async def _render_slot_isolated(self, slot: SlotMatch, symbols: SymbolTable, depth: int) -> Tuple[str, List[Dict[str, Any]]]:
        outer = self.context.attachments
        self.context.attachments = []
        try:
            value = await self._render_slot(slot, symbols, depth)
            return value, self.context.attachments
        finally:
            self.context.attachments = outer

    async def _render_slot(self, slot: SlotMatch, symbols: SymbolTable, depth: int) -> str:
        if slot.expression is not None:
            return self._evaluate(slot, symbols)
        variable = symbols.lookup(slot.name)
        if variable is not None:
            return await self._expand_variable(variable, slot, symbols, depth)
        if slot.name in self.context.functions:
            return await self._call_function(slot.as_call())
        self._trace("slot_left_unresolved", name=slot.name, line=slot.line, column=slot.column, depth=depth)
        return slot.text

    def _evaluate(self, slot: SlotMatch, symbols: SymbolTable) -> str:
        def resolve(name: str) -> Number:
            variable = symbols.lookup(name)
            if variable is None:
                raise UnboundName(name)
            if variable.is_number:
                return variable.content
            if variable.call is None and isinstance(variable.content, str):
                number = parse_number(variable.content)
                if number is not None:
                    return number
            raise EvaluationError(f"Variable `{name}` is not numeric")

        try:
            value = evaluate(slot.expression, resolve)
        except UnboundName as e:
            self._trace("expression_left_unresolved", name=e.name, expression=str(slot.expression))
            return slot.text
        self._trace("expression_evaluated", expression=str(slot.expression), value=value)
        return format_number(value)

    async def _expand_variable(self, variable: Variable, slot: SlotMatch, symbols: SymbolTable, depth: int) -> str:
        if variable.call is not None:
            return await self._call_function(variable.call)
        if variable.is_number:
            return format_number(variable.content)
        if variable.raw or slot.raw:
            return str(variable.content)

        bindings = bind_parameters(variable, slot.args)
        self._trace("expanding_variable", name=variable.name, depth=depth + 1, params=sorted(bindings))
        try:
            return await self._render_text(str(variable.content), symbols.child(bindings), depth + 1)
        except TemplateSyntaxError as e:
            self._trace("variable_rendered_raw", name=variable.name, reason=str(e))
            return str(variable.content)

    async def _call_function(self, call: FunctionCall) -> str:
        if call.name not in self.context.functions:
            raise EvaluationError(f"Unknown function: {call.name}")
        positional = [self._unmask(value) for value in call.positional_values()]
        named = {name: self._unmask(value) for name, value in call.named_values().items()}
        self._trace("calling_function", name=call.name, args=positional, kwargs=named)
        result = await self.context.functions.call(call.name, self.context, positional, named)
        return _stringify(result)


async def render(template: Any, context: Optional[ParserContext] = None) -> Union[Any, str, List[ParserMatch]]:
    """
    Renders a template to text.

    Non-string input comes back unchanged, as does whitespace-only text.
    With `context.options.return_parser_matches` set the top-level parser
    matches are returned instead of rendered text.
    """
    if not isinstance(template, str) or not template.strip():
        return template
    if context is None:
        context = ParserContext()
    log.debug("render_started", chars=len(template), seeded_variables=len(context.variables))
    result = await Renderer(context).render(template)
    log.debug("render_finished", attachments=len(context.attachments))
    return result


def render_sync(template: Any, context: Optional[ParserContext] = None) -> Union[Any, str, List[ParserMatch]]:
    # for callers without an event loop.
    return asyncio.run(render(template, context))
