# promptshaper/core/source.py
"""
Processed template text that remembers where each character came from.

Masking and comment stripping rewrite the template before it reaches the
grammar; diagnostics still have to point at the line and column the user
typed, so every processed character carries the offset of its origin.
"""
import bisect
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class SourceText:
    text: str
    origins: Tuple[int, ...]  # len(text) + 1 entries; last one is the end offset.
    original: str

    @classmethod
    def from_string(cls, text: str) -> "SourceText":
        return cls(text=text, origins=tuple(range(len(text) + 1)), original=text)

    def origin_of(self, offset: int) -> int:
        offset = max(0, min(offset, len(self.text)))
        return self.origins[offset]

    def line_column(self, offset: int) -> Tuple[int, int]:
        # 1-based line/column in the original text for a processed offset.
        origin = self.origin_of(offset)
        line_starts = _line_starts(self.original)
        line_index = bisect.bisect_right(line_starts, origin) - 1
        return line_index + 1, origin - line_starts[line_index] + 1


def _line_starts(text: str) -> List[int]:
    starts = [0]
    index = text.find("\n")
    while index != -1:
        starts.append(index + 1)
        index = text.find("\n", index + 1)
    return starts


class SourceBuilder:
    """Assembles a new SourceText from kept slices and inserted strings."""

    def __init__(self, source: SourceText):
        self.source = source
        self._chunks: List[str] = []
        self._origins: List[int] = []

    def keep(self, start: int, end: int):
        if end <= start:
            return
        self._chunks.append(self.source.text[start:end])
        self._origins.extend(self.source.origins[start:end])

    def insert(self, text: str, at: int):
        # inserted characters all map to the origin of processed offset `at`.
        origin = self.source.origin_of(at)
        self._chunks.append(text)
        self._origins.extend([origin] * len(text))

    def build(self) -> SourceText:
        origins = tuple(self._origins) + (self.source.origins[-1],)
        return SourceText(text="".join(self._chunks), origins=origins, original=self.source.original)
