# promptshaper/core/comments.py
import structlog

from promptshaper.core.source import SourceBuilder, SourceText

log = structlog.get_logger(__name__)

_HORIZONTAL_WS = " \t"


def _is_line_start(text: str, index: int) -> bool:
    return index == 0 or text[index - 1] == "\n"


def _rewind_whitespace(text: str, index: int, floor: int) -> int:
    while index > floor and text[index - 1] in _HORIZONTAL_WS:
        index -= 1
    return index


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in _HORIZONTAL_WS + "\r":
        index += 1
    return index


def strip_comments(source: SourceText) -> SourceText:
    """
    Removes `//` line comments and `/* */` block comments.

    Code spans have already been masked, so only string literals inside tags
    need protecting: a `"` opens a string only while a brace is open on the
    current line. `//` right after `:` is left alone so URLs survive. A
    comment that is the only thing on its line takes the line break with it.
    """
    text = source.text
    if "//" not in text and "/*" not in text:
        return source

    builder = SourceBuilder(source)
    keep_from = 0
    depth = 0
    in_string = False
    removed = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == "\\" and i + 1 < len(text) and text[i + 1] in "{}":
            i += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth = max(0, depth - 1)
        elif ch == "\n":
            depth = 0
        elif ch == '"' and depth > 0:
            in_string = True
        elif ch == "/" and text.startswith("//", i) and (i == 0 or text[i - 1] != ":"):
            cut_start = _rewind_whitespace(text, i, keep_from)
            cut_end = text.find("\n", i)
            if cut_end == -1:
                cut_end = len(text)
            elif _is_line_start(text, cut_start):
                cut_end += 1
                depth = 0
            builder.keep(keep_from, cut_start)
            keep_from = i = cut_end
            removed += 1
            continue
        elif ch == "/" and text.startswith("/*", i):
            close = text.find("*/", i + 2)
            comment_end = len(text) if close == -1 else close + 2
            cut_start = i
            cut_end = comment_end
            line_rest = _skip_whitespace(text, comment_end)
            standalone_start = _rewind_whitespace(text, i, keep_from)
            if _is_line_start(text, standalone_start) and (line_rest == len(text) or text[line_rest] == "\n"):
                cut_start = standalone_start
                cut_end = min(line_rest + 1, len(text))
                depth = 0
            elif "\n" in text[i:comment_end]:
                depth = 0
            builder.keep(keep_from, cut_start)
            keep_from = i = cut_end
            removed += 1
            continue
        i += 1

    builder.keep(keep_from, len(text))
    log.debug("comments_stripped", count=removed)
    return builder.build()
