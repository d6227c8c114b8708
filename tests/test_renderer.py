# tests/test_renderer.py
"""End-to-end rendering tests."""
import pytest

from promptshaper import MAX_RECURSION_DEPTH, ParserContext, RenderOptions, Variable, render, render_sync
from promptshaper.core.grammar import MatchType
from promptshaper.exceptions import (
    DivisionByZeroError,
    EvaluationError,
    MismatchedTagError,
    MissingParameterError,
    TemplateSyntaxError,
    VariableConflictError,
)


class TestBasics:
    @pytest.mark.asyncio
    async def test_single_line_variable(self):
        assert await render('{x="5"}{{x}}') == "5"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("template", [
        "Plain text, nothing to see.",
        "Braces only close } here",
        "multi\nline\n\ntext\n",
    ])
    async def test_tagless_template_is_identity(self, template):
        assert await render(template) == template

    @pytest.mark.asyncio
    async def test_backtick_wrapped_slot_is_untouched(self):
        assert await render("`{{x}}`") == "`{{x}}`"

    @pytest.mark.asyncio
    async def test_fenced_code_is_byte_identical(self):
        template = "Intro\n```js\n// keep me\nconst a = {b: 1}; /* and me */\n{{slot}}\n```\nOutro"
        assert await render(template) == template

    @pytest.mark.asyncio
    async def test_escaped_braces(self):
        assert await render(r"\{\{x\}\}") == "{{x}}"

    @pytest.mark.asyncio
    async def test_non_string_passes_through(self):
        assert await render(None) is None
        assert await render(42) == 42

    @pytest.mark.asyncio
    async def test_whitespace_only_is_returned(self):
        assert await render("  \n ") == "  \n "

    @pytest.mark.asyncio
    async def test_numeric_variable(self):
        assert await render("{num = 42}{{num}}") == "42"

    @pytest.mark.asyncio
    async def test_forward_reference(self):
        assert await render('{{x}}{x="late"}') == "late"

    def test_render_sync(self):
        assert render_sync('{x="sync"}{{x}}') == "sync"


class TestLayout:
    @pytest.mark.asyncio
    async def test_standalone_definitions_leave_no_blank_lines(self):
        template = '{name="Ada"}\n// a comment\nHello {{name}}'
        assert await render(template) == "Hello Ada"

    @pytest.mark.asyncio
    async def test_standalone_multiline_definition(self):
        template = "Top\n{greet(who)}\nHi {{who}}!\n{/greet}\n{{greet(\"Bob\")}}\nEnd"
        assert await render(template) == "Top\nHi Bob!\nEnd"

    @pytest.mark.asyncio
    async def test_inline_definition_keeps_surrounding_text(self):
        assert await render('a {x="1"} b {{x}}') == "a  b 1"


class TestParameters:
    @pytest.mark.asyncio
    async def test_required_and_optional(self):
        assert await render('{a(req,opt="d")}{{req}}-{{opt}}{/a}{{a("R")}}') == "R-d"

    @pytest.mark.asyncio
    async def test_named_argument_overrides_default(self):
        template = '{a(req, opt="d")}{{req}}-{{opt}}{/a}{{a("R", opt="o")}}'
        assert await render(template) == "R-o"

    @pytest.mark.asyncio
    async def test_missing_required_param(self):
        with pytest.raises(MissingParameterError) as exc_info:
            await render('{a(x, y)}{{x}}{{y}}{/a}{{a("1")}}')
        assert str(exc_info.value) == "Required param for `a` not found: `y`"

    @pytest.mark.asyncio
    async def test_numeric_param_in_arithmetic(self):
        assert await render("{price(n)}Total: {{n * 2 + 1}}{/price}{{price(20)}}") == "Total: 41"

    @pytest.mark.asyncio
    async def test_numeric_string_param_in_arithmetic(self):
        assert await render('{half(n)}{{n / 2}}{/half}{{half("9")}}') == "4.5"

    @pytest.mark.asyncio
    async def test_params_shadow_outer_variables(self):
        template = '{who="outer"}{say(who)}{{who}}{/say}{{say("inner")}} {{who}}'
        assert await render(template) == "inner outer"

    @pytest.mark.asyncio
    async def test_nested_definitions_are_scoped_per_expansion(self):
        assert await render('{wrap}{inner="i"}{{inner}}{/wrap}{{wrap}}{{wrap}}') == "ii"


class TestArithmeticSlots:
    @pytest.mark.asyncio
    async def test_literal_expression(self):
        assert await render("{{ 2 + 3 ^ 2 }}") == "11"

    @pytest.mark.asyncio
    async def test_unresolved_name_is_left_verbatim(self):
        assert await render("{{ missing + 1 }}") == "{{ missing + 1 }}"

    @pytest.mark.asyncio
    async def test_division_by_zero(self):
        with pytest.raises(DivisionByZeroError, match="Division by zero"):
            await render("{{ 5 / 0 }}")

    @pytest.mark.asyncio
    async def test_non_numeric_variable(self):
        with pytest.raises(EvaluationError, match="not numeric"):
            await render('{s="abc"}{{s * 2}}')

    @pytest.mark.asyncio
    @pytest.mark.parametrize("template", ["{{10^400 / 3}}", "{{10^400 + 0.5}}"])
    async def test_overflow_is_an_evaluation_error(self, template):
        with pytest.raises(EvaluationError, match="Numeric overflow"):
            await render(template)


class TestSoftMisses:
    @pytest.mark.asyncio
    async def test_unknown_names_stay_verbatim(self):
        template = 'Hi {{functionName}} and {{func("outer \\"inner\\" quote")}}'
        assert await render(template) == template

    @pytest.mark.asyncio
    async def test_raw_variable_renders_verbatim(self):
        template = "{doc}\nExample: {{ broken\n{/doc}\n{{doc}}"
        assert await render(template) == "Example: {{ broken"

    @pytest.mark.asyncio
    async def test_raw_slot_skips_parsing(self):
        template = '{x="X"}{doc}\nUse {{x}} here\n{/doc}{{@doc}} / {{doc}}'
        assert await render(template) == "Use {{x}} here / Use X here"

    @pytest.mark.asyncio
    async def test_self_reference_stops(self):
        assert await render("{a}{{a}}{/a}{{a}}") == "{{a}}"

    @pytest.mark.asyncio
    async def test_mutual_reference_stops(self):
        result = await render("{a}A{{b}}{/a}{b}B{{a}}{/b}{{a}}")
        assert result == "ABABA{{b}}"
        assert MAX_RECURSION_DEPTH == 5

    @pytest.mark.asyncio
    async def test_code_span_in_variable_body(self):
        template = "{snippet}\n```\n{{not_a_slot}}\n```\n{/snippet}{{snippet}}"
        assert await render(template) == "```\n{{not_a_slot}}\n```"


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_syntax_error(self):
        with pytest.raises(TemplateSyntaxError):
            await render("Text with {single brace}")

    @pytest.mark.asyncio
    async def test_mismatched_tags(self):
        with pytest.raises(MismatchedTagError):
            await render("{start}content{/end}")

    @pytest.mark.asyncio
    async def test_redefinition(self):
        with pytest.raises(VariableConflictError, match="Variable name conflict: `x`"):
            await render('{x="1"}{x="2"}')

    @pytest.mark.asyncio
    async def test_definition_named_like_function(self):
        with pytest.raises(VariableConflictError, match="conflicts with function: `add`"):
            await render('{add="nope"}')

    @pytest.mark.asyncio
    async def test_unknown_function_in_definition(self):
        with pytest.raises(EvaluationError, match="Unknown function: nope"):
            await render('{v = nope("a")}{{v}}')


class TestContext:
    @pytest.mark.asyncio
    async def test_seeded_variables(self):
        context = ParserContext(variables={"name": Variable("name", "World")})
        assert await render("Hello {{name}}", context) == "Hello World"

    @pytest.mark.asyncio
    async def test_plain_values_are_accepted_as_seeds(self):
        context = ParserContext(variables={"name": "World", "n": 3})
        assert await render("{{name}} {{n * 2}}", context) == "World 6"

    @pytest.mark.asyncio
    async def test_seeded_variable_with_bad_syntax_is_raw(self):
        context = ParserContext(variables={"snippet": Variable("snippet", "{{ oops")})
        assert await render("{{snippet}}", context) == "{{ oops"

    @pytest.mark.asyncio
    async def test_seeded_name_conflicts_with_definition(self):
        context = ParserContext(variables={"name": "seed"})
        with pytest.raises(VariableConflictError):
            await render('{name="again"}', context)

    @pytest.mark.asyncio
    async def test_top_level_definitions_are_stored_in_context(self):
        context = ParserContext()
        await render('{x="1"}{{x}}', context)
        assert context.variables["x"].content == "1"

    @pytest.mark.asyncio
    async def test_return_parser_matches(self):
        context = ParserContext(options=RenderOptions(return_parser_matches=True))
        matches = await render('{x="1"}Hi {{x}}', context)
        assert [m.type for m in matches] == [MatchType.VARIABLE, MatchType.TEXT, MatchType.SLOT]

    @pytest.mark.asyncio
    async def test_debug_messages_do_not_change_output(self):
        context = ParserContext(options=RenderOptions(show_debug_messages=True))
        assert await render('{x="1"}{{x}}', context) == "1"

    @pytest.mark.asyncio
    async def test_seeded_name_conflicts_with_function(self):
        context = ParserContext(variables={"add": "hijack"})
        with pytest.raises(VariableConflictError, match="Variable name conflicts with function: `add`"):
            await render("{{add(1, 2)}}", context)

    @pytest.mark.asyncio
    async def test_seeded_variable_object_conflicts_with_function(self):
        context = ParserContext(variables={"load": Variable("load", "x")})
        with pytest.raises(VariableConflictError, match="conflicts with function: `load`"):
            await render("{{load}}", context)

    @pytest.mark.asyncio
    async def test_returned_matches_hold_original_code_spans(self):
        context = ParserContext(options=RenderOptions(return_parser_matches=True))
        matches = await render('see `code` {x="`y`"}{{f("`z`")}}', context)
        text, definition, slot = matches
        assert text.text == "see `code` "
        assert text.value == "see `code` "
        assert definition.text == '{x="`y`"}'
        assert definition.variable.content == "`y`"
        assert slot.text == '{{f("`z`")}}'
        assert slot.args[0].value == "`z`"

    @pytest.mark.asyncio
    async def test_stored_definitions_hold_original_code_spans(self):
        context = ParserContext()
        assert await render("{a}\n`c`\n{/a}{{a}}", context) == "`c`"
        assert context.variables["a"].content == "`c`"

    @pytest.mark.asyncio
    async def test_context_can_be_rendered_twice(self):
        context = ParserContext()
        await render("{a}\n`c` and `d`\n{/a}", context)
        assert await render("{{a}}", context) == "`c` and `d`"
