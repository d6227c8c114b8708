import math
from typing import Union

import structlog

log = structlog.get_logger(__name__)
utf8_bom = b"\xef\xbb\xbf"

Number = Union[int, float]

def strip_utf8_bom(data: bytes) -> bytes:
    # removes the utf-8 byte order mark from byte data if present.
    if data.startswith(utf8_bom):
        return data[len(utf8_bom):]
    return data

def read_text_file(path) -> str:
    # reads a file as utf-8 text, tolerating a bom and undecodable bytes.
    return strip_utf8_bom(path.read_bytes()).decode("utf-8", errors="replace")

def get_language_hint(extension: str | None) -> str:
    # provides a language hint for markdown code blocks based on file extension.
    if not extension:
        return ""
    ext = extension.lower().strip(".")
    ext_map = {
        "py": "python", "js": "javascript", "ts": "typescript", "java": "java",
        "c": "c", "h": "c", "cpp": "cpp", "hpp": "cpp", "cs": "csharp", "go": "go",
        "rb": "ruby", "php": "php", "swift": "swift", "kt": "kotlin", "rs": "rust",
        "scala": "scala", "sh": "bash", "md": "markdown", "json": "json",
        "yaml": "yaml", "yml": "yaml", "xml": "xml", "html": "html", "css": "css",
        "sql": "sql", "dockerfile": "dockerfile", "toml": "toml", "ini": "ini",
        "txt": "", "tsx": "tsx", "jsx": "jsx",
    }
    return ext_map.get(ext, ext)

def code_fence_for(content: str) -> str:
    # returns a backtick fence longer than any backtick run inside content.
    backtick_seq = "```"
    while backtick_seq in content:
        backtick_seq += "`"
    return backtick_seq

def replace_at_location(text: str, replacement: str, start: int, end: int) -> str:
    # replaces text[start:end] with replacement.
    if start < 0 or end > len(text) or start > end:
        raise ValueError(f"invalid replacement range [{start}, {end}) for text of length {len(text)}")
    return text[:start] + replacement + text[end:]

def parse_number(text: str) -> Number | None:
    # parses a `-?\d+(\.\d+)?` literal, returning None for anything else.
    candidate = text.strip()
    body = candidate[1:] if candidate.startswith("-") else candidate
    int_part, _, frac_part = body.partition(".")
    if not int_part.isdigit() or not int_part.isascii():
        return None
    if "." in body:
        if not frac_part.isdigit() or not frac_part.isascii():
            return None
        return float(candidate)
    return int(candidate)

def format_number(value: Number) -> str:
    # renders numbers the way templates expect: integral floats lose their fraction.
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)
