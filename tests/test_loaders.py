# tests/test_loaders.py
from pathlib import Path

import pytest

from promptshaper.core.loaders import (
    FileCache,
    encode_local_image_as_base64,
    format_file_block,
    load_directory_contents,
)
from promptshaper.core.loaders.directory import compile_glob_patterns_to_spec
from promptshaper.exceptions import LoaderError


def test_format_file_block():
    assert format_file_block("src/app.ts", "let x;") == "\n\nFile: src/app.ts\n```typescript\nlet x;\n```\n\n"


def test_format_file_block_unknown_extension_uses_suffix():
    assert "```proto\n" in format_file_block("api.proto", "syntax = 1;")


def test_file_cache(tmp_path: Path):
    path = tmp_path / "bom.txt"
    path.write_bytes(b"\xef\xbb\xbfhello")
    cache = FileCache()
    assert cache.read(path) == "hello"
    assert path in cache
    cache.clear()
    assert len(cache) == 0


def test_file_cache_rejects_directories(tmp_path: Path):
    with pytest.raises(LoaderError, match="Invalid file path"):
        FileCache().read(tmp_path)


class TestLoadDirectoryContents:
    @pytest.fixture
    def tree(self, tmp_path: Path) -> Path:
        (tmp_path / "pkg" / "deep").mkdir(parents=True)
        (tmp_path / "top.md").write_text("# top", encoding="utf-8")
        (tmp_path / "pkg" / "mod.py").write_text("x = 1", encoding="utf-8")
        (tmp_path / "pkg" / "deep" / "inner.py").write_text("y = 2", encoding="utf-8")
        return tmp_path

    def test_keys_use_label_root(self, tree: Path):
        contents = load_directory_contents(tree, extensions=[".py"], label_root="project")
        assert contents == {"project/pkg/mod.py": "x = 1", "project/pkg/deep/inner.py": "y = 2"}

    def test_non_recursive(self, tree: Path):
        contents = load_directory_contents(tree, recursive=False, label_root=".")
        assert list(contents) == ["top.md"]

    def test_ignore_file_glob(self, tree: Path):
        contents = load_directory_contents(tree, ignore_patterns=["deep/"], label_root="r")
        assert sorted(contents) == ["r/pkg/mod.py", "r/top.md"]

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(LoaderError, match="Invalid directory path"):
            load_directory_contents(tmp_path / "absent")


def test_compile_glob_patterns_to_spec():
    assert compile_glob_patterns_to_spec([]) is None
    spec = compile_glob_patterns_to_spec(["*.log", "build/"])
    assert spec.match_file("debug.log")
    assert spec.match_file("build/out.txt")
    assert not spec.match_file("src/main.py")


class TestImages:
    def test_encode_webp(self, tmp_path: Path):
        path = tmp_path / "a.webp"
        path.write_bytes(b"RIFF")
        assert encode_local_image_as_base64(path) == ("UklGRg==", "webp")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(LoaderError, match="Failed to load local file"):
            encode_local_image_as_base64(tmp_path / "gone.png")

    def test_unsupported(self, tmp_path: Path):
        with pytest.raises(LoaderError, match="Unsupported image type '.tiff'"):
            encode_local_image_as_base64(tmp_path / "scan.tiff")
