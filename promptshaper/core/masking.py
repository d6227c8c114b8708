# promptshaper/core/masking.py
"""
Code span masking.

Fenced blocks and inline backtick spans are swapped for opaque placeholders
before comments are stripped or tags are parsed, and swapped back once the
whole render has finished, so their bytes reach the output untouched.
"""
import re
from typing import List, Tuple

import structlog

from promptshaper.core.source import SourceBuilder, SourceText

log = structlog.get_logger(__name__)

PLACEHOLDER_OPEN = "\ue000"
PLACEHOLDER_CLOSE = "\ue001"

_PLACEHOLDER_RE = re.compile(f"{PLACEHOLDER_OPEN}(\\d+){PLACEHOLDER_CLOSE}")
_FENCE_OPEN_RE = re.compile(r" {0,3}(`{3,})[^`\n]*")
_FENCE_CLOSE_RE = re.compile(r" {0,3}(`{3,})[ \t\r]*")
_BACKTICK_RUN_RE = re.compile(r"`+")


class MaskTable:
    """Holds the original text of every masked span, indexed by placeholder."""

    def __init__(self):
        self._originals: List[str] = []

    def __len__(self) -> int:
        return len(self._originals)

    def add(self, original: str) -> str:
        self._originals.append(original)
        return f"{PLACEHOLDER_OPEN}{len(self._originals) - 1}{PLACEHOLDER_CLOSE}"

    def _substitute(self, match: re.Match) -> str:
        index = int(match.group(1))
        if index < len(self._originals):
            return self._originals[index]
        return match.group(0)

    def restore(self, text: str) -> str:
        # spans masked at deeper render levels may wrap earlier placeholders.
        for _ in range(len(self._originals) + 1):
            restored = _PLACEHOLDER_RE.sub(self._substitute, text)
            if restored == text:
                break
            text = restored
        return text


def _split_lines(text: str) -> List[Tuple[int, int]]:
    # (start, end) per line, end excluding the newline.
    lines = []
    start = 0
    while start <= len(text):
        newline = text.find("\n", start)
        if newline == -1:
            lines.append((start, len(text)))
            break
        lines.append((start, newline))
        start = newline + 1
    return lines


def _find_inline_spans(text: str, start: int, end: int) -> List[Tuple[int, int]]:
    spans = []
    pos = start
    while True:
        opener = _BACKTICK_RUN_RE.search(text, pos, end)
        if not opener:
            return spans
        line_end = text.find("\n", opener.end(), end)
        if line_end == -1:
            line_end = end
        run_length = len(opener.group(0))
        closer = next(
            (run for run in _BACKTICK_RUN_RE.finditer(text, opener.end(), line_end) if len(run.group(0)) == run_length),
            None,
        )
        if closer:
            spans.append((opener.start(), closer.end()))
            pos = closer.end()
        else:
            pos = opener.end()


def find_masked_ranges(text: str) -> List[Tuple[int, int]]:
    # sorted, non-overlapping [start, end) ranges of fenced blocks and inline spans.
    if "`" not in text:
        return []
    ranges: List[Tuple[int, int]] = []
    lines = _split_lines(text)
    outside_start = 0
    index = 0
    while index < len(lines):
        line_start, line_end = lines[index]
        opener = _FENCE_OPEN_RE.fullmatch(text, line_start, line_end)
        closing_index = None
        if opener:
            fence_length = len(opener.group(1))
            for candidate in range(index + 1, len(lines)):
                cand_start, cand_end = lines[candidate]
                closer = _FENCE_CLOSE_RE.fullmatch(text, cand_start, cand_end)
                if closer and len(closer.group(1)) >= fence_length:
                    closing_index = candidate
                    break
        if closing_index is None:
            index += 1
            continue
        ranges.extend(_find_inline_spans(text, outside_start, line_start))
        fence_end = lines[closing_index][1]
        ranges.append((line_start, fence_end))
        outside_start = fence_end
        index = closing_index + 1
    ranges.extend(_find_inline_spans(text, outside_start, len(text)))
    return ranges


def mask_code_spans(source: SourceText, table: MaskTable) -> SourceText:
    ranges = find_masked_ranges(source.text)
    if not ranges:
        return source
    builder = SourceBuilder(source)
    cursor = 0
    for start, end in ranges:
        builder.keep(cursor, start)
        builder.insert(table.add(source.text[start:end]), start)
        cursor = end
    builder.keep(cursor, len(source.text))
    log.debug("code_spans_masked", count=len(ranges))
    return builder.build()
