# promptshaper/core/loaders/files.py
from pathlib import Path
from typing import Dict

import structlog

from promptshaper.exceptions import LoaderError
from promptshaper.util import code_fence_for, get_language_hint, read_text_file

log = structlog.get_logger(__name__)


class FileCache:
    """Caches file contents by resolved path for the lifetime of one render."""

    def __init__(self):
        self._contents: Dict[Path, str] = {}

    def __contains__(self, path: Path) -> bool:
        return Path(path).resolve() in self._contents

    def __len__(self) -> int:
        return len(self._contents)

    def read(self, path: Path) -> str:
        key = Path(path).resolve()
        if key in self._contents:
            log.debug("file_cache_hit", path=str(key))
            return self._contents[key]
        if not key.is_file():
            raise LoaderError(f"Invalid file path: {path}")
        try:
            content = read_text_file(key)
        except OSError as e:
            raise LoaderError(f"Failed to read file '{path}': {e}") from e
        self._contents[key] = content
        log.debug("file_loaded", path=str(key), chars=len(content))
        return content

    def clear(self):
        self._contents.clear()


def format_file_block(label: str, content: str) -> str:
    # markdown block labelled with the path; the fence outgrows any backticks inside.
    fence = code_fence_for(content)
    language = get_language_hint(Path(label).suffix)
    return f"\n\nFile: {label}\n{fence}{language}\n{content}\n{fence}\n\n"
