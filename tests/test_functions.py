# tests/test_functions.py
import base64

import pytest

from promptshaper import FunctionRegistry, ParserContext, RenderOptions, create_default_registry, render
from promptshaper.core.functions.builtins import IMAGE_PLACEHOLDER
from promptshaper.exceptions import (
    DivisionByZeroError,
    FunctionCallError,
    FunctionRegistryError,
    LoaderError,
    VariableConflictError,
)


def _shout(context, text):
    return text.upper()


class TestRegistry:
    def test_default_registry_has_builtins(self):
        registry = create_default_registry()
        assert registry.names() == ["add", "divide", "img", "load", "loadDir", "multiply", "subtract"]

    def test_register_and_unregister(self):
        registry = FunctionRegistry()
        registry.register_function("shout", _shout)
        assert "shout" in registry
        assert registry.get("shout") is _shout
        registry.unregister_function("shout")
        assert "shout" not in registry
        registry.unregister_function("shout")  # absent names are ignored

    def test_duplicate_registration(self):
        registry = FunctionRegistry({"shout": _shout})
        with pytest.raises(FunctionRegistryError, match="Function shout is already registered."):
            registry.register_function("shout", _shout)

    @pytest.mark.parametrize("name", ["", "1abc", "has-dash", "with space"])
    def test_invalid_names(self, name):
        with pytest.raises(FunctionRegistryError, match="Invalid function name"):
            FunctionRegistry().register_function(name, _shout)

    def test_non_callable(self):
        with pytest.raises(FunctionRegistryError, match="not callable"):
            FunctionRegistry().register_function("x", "not a function")

    def test_registries_are_independent(self):
        first, second = ParserContext(), ParserContext()
        first.functions.register_function("shout", _shout)
        assert "shout" not in second.functions
        copied = first.functions.copy()
        copied.unregister_function("shout")
        assert "shout" in first.functions

    @pytest.mark.asyncio
    async def test_call_with_wrong_arity(self):
        registry = FunctionRegistry({"shout": _shout})
        with pytest.raises(FunctionCallError, match=r"Invalid arguments for shout\(\)"):
            await registry.call("shout", ParserContext(), ["a", "b"], {})


class TestCustomFunctions:
    @pytest.mark.asyncio
    async def test_sync_function(self):
        context = ParserContext()
        context.functions.register_function("shout", _shout)
        assert await render('{{shout("hey")}}', context) == "HEY"

    @pytest.mark.asyncio
    async def test_async_function(self):
        async def fetch_title(context, slug, suffix="!"):
            return f"{slug.title()}{suffix}"

        context = ParserContext()
        context.functions.register_function("title", fetch_title)
        assert await render('{{title("intro")}} {{title("end", suffix="?")}}', context) == "Intro! End?"

    @pytest.mark.asyncio
    async def test_zero_argument_function_without_parentheses(self):
        context = ParserContext()
        context.functions.register_function("today", lambda ctx: "2024-01-01")
        assert await render("Date: {{today}}", context) == "Date: 2024-01-01"

    @pytest.mark.asyncio
    async def test_function_sees_context_variables(self):
        def context_info(context):
            return f"vars={len(context.variables)}"

        context = ParserContext()
        context.functions.register_function("contextInfo", context_info)
        assert await render('{x="1"}{{contextInfo()}}', context) == "vars=1"

    @pytest.mark.asyncio
    async def test_definition_cannot_shadow_registered_function(self):
        context = ParserContext()
        context.functions.register_function("shout", _shout)
        with pytest.raises(VariableConflictError, match="conflicts with function: `shout`"):
            await render('{shout="x"}', context)

    @pytest.mark.asyncio
    async def test_code_span_arguments_are_restored(self):
        context = ParserContext()
        context.functions.register_function("echo", lambda ctx, value: f"<{value}>")
        assert await render('{{echo("`x`")}}', context) == "<`x`>"

    @pytest.mark.asyncio
    async def test_attachments_follow_text_order(self):
        def attach(context, value):
            context.attachments.append({"id": value})
            return value

        context = ParserContext()
        context.functions.register_function("attach", attach)
        template = '{wrap}{{attach("b")}}{/wrap}{{attach("a")}}{{wrap}}{{attach("c")}}'
        assert await render(template, context) == "abc"
        assert context.attachments == [{"id": "a"}, {"id": "b"}, {"id": "c"}]


class TestArithmeticBuiltins:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("template,expected", [
        ("{add(5, 10)}", "15"),
        ("{{add(2, 3)}}", "5"),
        ('{{subtract("10", 4)}}', "6"),
        ("{{multiply(2.5, 2)}}", "5"),
        ("{{divide(7, 2)}}", "3.5"),
        ("{sum = add(2, 3)}{{sum}}", "5"),
    ])
    async def test_results(self, template, expected):
        assert await render(template) == expected

    @pytest.mark.asyncio
    async def test_divide_by_zero(self):
        with pytest.raises(DivisionByZeroError):
            await render("{{divide(1, 0)}}")

    @pytest.mark.asyncio
    async def test_non_numeric_argument(self):
        with pytest.raises(FunctionCallError, match="expects numeric parameters"):
            await render('{{add("one", 2)}}')


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_relative_to_base_dir(self, tmp_path):
        (tmp_path / "notes.txt").write_text("hello {{not_rendered}}", encoding="utf-8")
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        result = await render('{{load("notes.txt")}}', context)
        assert result == "\n\nFile: notes.txt\n```\nhello {{not_rendered}}\n```\n\n"

    @pytest.mark.asyncio
    async def test_language_hint_and_long_fence(self, tmp_path):
        (tmp_path / "doc.py").write_text('"""\n```\nexample\n```\n"""', encoding="utf-8")
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        result = await render('{{load("doc.py")}}', context)
        assert result.startswith("\n\nFile: doc.py\n````python\n")
        assert result.endswith("\n````\n\n")

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        with pytest.raises(LoaderError, match=r"Invalid file path: .*missing\.txt"):
            await render('{{load("missing.txt")}}', context)

    @pytest.mark.asyncio
    async def test_non_string_path(self):
        with pytest.raises(FunctionCallError, match="Invalid file path"):
            await render("{{load(5)}}")

    @pytest.mark.asyncio
    async def test_file_is_read_once_per_context(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("first", encoding="utf-8")
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        await render('{{load("a.txt")}}', context)
        path.write_text("second", encoding="utf-8")
        result = await render('{{load("a.txt")}}', context)
        assert "first" in result
        assert len(context.file_cache) == 1


@pytest.fixture
def source_tree(tmp_path):
    src = tmp_path / "src"
    (src / "node_modules").mkdir(parents=True)
    (src / "sub").mkdir()
    (src / "a.py").write_text("a = 1", encoding="utf-8")
    (src / "b.js").write_text("let b;", encoding="utf-8")
    (src / "notes.log").write_text("log", encoding="utf-8")
    (src / "node_modules" / "x.js").write_text("x", encoding="utf-8")
    (src / "sub" / "c.py").write_text("c = 3", encoding="utf-8")
    return tmp_path


def _labels(rendered):
    return [line[len("File: "):] for line in rendered.splitlines() if line.startswith("File: ")]


class TestLoadDir:
    @pytest.mark.asyncio
    async def test_extension_filter(self, source_tree):
        context = ParserContext(options=RenderOptions(base_dir=source_tree, file_extensions="py,js"))
        result = await render('{{loadDir("src")}}', context)
        assert _labels(result) == ["src/a.py", "src/b.js", "src/node_modules/x.js", "src/sub/c.py"]
        assert "```python\na = 1\n```" in result

    @pytest.mark.asyncio
    async def test_all_files_without_extensions(self, source_tree):
        context = ParserContext(options=RenderOptions(base_dir=source_tree))
        result = await render('{{loadDir("src")}}', context)
        assert "src/notes.log" in _labels(result)

    @pytest.mark.asyncio
    async def test_configured_ignore_patterns(self, source_tree):
        options = RenderOptions(base_dir=source_tree, file_extensions=".py,.js", ignore_patterns=["node_modules"])
        result = await render('{{loadDir("src")}}', ParserContext(options=options))
        assert _labels(result) == ["src/a.py", "src/b.js", "src/sub/c.py"]

    @pytest.mark.asyncio
    async def test_argument_replaces_configured_patterns(self, source_tree):
        options = RenderOptions(base_dir=source_tree, file_extensions="py,js", ignore_patterns=["sub"])
        result = await render('{{loadDir("src", "node_modules, *.js")}}', ParserContext(options=options))
        assert _labels(result) == ["src/a.py", "src/sub/c.py"]

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        with pytest.raises(LoaderError, match="Invalid directory path"):
            await render('{{loadDir("nope")}}', context)

    @pytest.mark.asyncio
    async def test_non_string_path(self):
        with pytest.raises(FunctionCallError, match="Invalid directory path"):
            await render("{{loadDir(3)}}")


class TestImg:
    @pytest.mark.asyncio
    async def test_remote_url(self):
        context = ParserContext()
        result = await render('Look: {{img("https://example.com/cat.png")}}', context)
        assert result == f"Look: {IMAGE_PLACEHOLDER}"
        assert context.attachments == [
            {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}}
        ]

    @pytest.mark.asyncio
    async def test_local_file_is_inlined(self, tmp_path):
        data = b"\x89PNG\r\n\x1a\nfake"
        (tmp_path / "pic.png").write_bytes(data)
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        await render('{{img("pic.png")}}', context)
        url = context.attachments[0]["image_url"]["url"]
        assert url == "data:image/png;base64," + base64.b64encode(data).decode("ascii")

    @pytest.mark.asyncio
    async def test_jpg_is_reported_as_jpeg(self, tmp_path):
        (tmp_path / "photo.JPG").write_bytes(b"\xff\xd8\xff")
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        await render('{{img("photo.JPG")}}', context)
        assert context.attachments[0]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_unsupported_type(self, tmp_path):
        (tmp_path / "pic.bmp").write_bytes(b"BM")
        context = ParserContext(options=RenderOptions(base_dir=tmp_path))
        with pytest.raises(LoaderError, match="Unsupported image type"):
            await render('{{img("pic.bmp")}}', context)

    @pytest.mark.asyncio
    async def test_non_string_source(self):
        with pytest.raises(FunctionCallError, match=r"img\(\) expects a string parameter."):
            await render("{{img(1)}}")
