# promptshaper/core/loaders/directory.py
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pathspec
import structlog

from promptshaper.exceptions import LoaderError
from promptshaper.util import read_text_file

log = structlog.get_logger(__name__)


def compile_glob_patterns_to_spec(glob_patterns: Sequence[str]) -> Optional[pathspec.PathSpec]:
    # compiles gitignore-style glob patterns into a pathspec object for matching.
    if not glob_patterns:
        return None
    try:
        return pathspec.PathSpec.from_lines(pathspec.patterns.GitWildMatchPattern, glob_patterns)
    except Exception as e:
        raise LoaderError(f"error compiling ignore patterns {list(glob_patterns)}: {e}") from e


def _has_allowed_extension(file_name: str, extensions: Sequence[str]) -> bool:
    if not extensions:
        return True
    return any(file_name.endswith(ext) for ext in extensions)


def load_directory_contents(
    directory: Path,
    extensions: Sequence[str] = (),
    recursive: bool = True,
    ignore_patterns: Sequence[str] = (),
    label_root: Optional[str] = None,
) -> Dict[str, str]:
    """
    Reads every matching file under `directory`.

    Keys are the file paths as they should be labelled in the prompt, built
    from `label_root` (defaults to the directory as given). Ignored
    directories are pruned before they are walked.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise LoaderError(f"Invalid directory path: {directory}")
    label_base = Path(label_root) if label_root is not None else directory
    ignore_spec = compile_glob_patterns_to_spec(ignore_patterns)

    def is_ignored(rel_path: str, is_dir: bool) -> bool:
        if not ignore_spec:
            return False
        return ignore_spec.match_file(rel_path + "/" if is_dir else rel_path) or ignore_spec.match_file(rel_path)

    log.info("directory_load_started", path=str(directory), extensions=list(extensions), ignore=list(ignore_patterns))
    contents: Dict[str, str] = {}
    for root, dirs, files in os.walk(directory, topdown=True):
        rel_root = Path(root).relative_to(directory)
        # prune directories.
        if recursive:
            dirs[:] = sorted(d for d in dirs if not is_ignored((rel_root / d).as_posix(), True))
        else:
            dirs[:] = []

        for file_name in sorted(files):
            rel_path = (rel_root / file_name).as_posix()
            if is_ignored(rel_path, False):
                log.debug("directory_file_ignored", path=rel_path)
                continue
            if not _has_allowed_extension(file_name, extensions):
                continue
            try:
                contents[(label_base / rel_path).as_posix()] = read_text_file(Path(root, file_name))
            except OSError as e:
                raise LoaderError(f"Failed to read file '{Path(root, file_name)}': {e}") from e

    log.info("directory_load_complete", path=str(directory), file_count=len(contents))
    return contents
