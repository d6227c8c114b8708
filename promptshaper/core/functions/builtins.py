# promptshaper/core/functions/builtins.py
"""Functions every template can call. Each receives the render context first."""
import asyncio
import re
from typing import Any, Dict

import structlog

from promptshaper.core.loaders.directory import load_directory_contents
from promptshaper.core.loaders.files import format_file_block
from promptshaper.core.loaders.images import encode_local_image_as_base64
from promptshaper.config.settings import split_comma_list
from promptshaper.exceptions import DivisionByZeroError, FunctionCallError
from promptshaper.util import Number, parse_number

log = structlog.get_logger(__name__)

IMAGE_PLACEHOLDER = "[image added to prompt]"
_WEB_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def _as_number(value: Any, function_name: str) -> Number:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        parsed = parse_number(value)
        if parsed is not None:
            return parsed
    raise FunctionCallError(f"{function_name}() expects numeric parameters, got {value!r}")


def add(context, a, b) -> Number:
    return _as_number(a, "add") + _as_number(b, "add")


def subtract(context, a, b) -> Number:
    return _as_number(a, "subtract") - _as_number(b, "subtract")


def multiply(context, a, b) -> Number:
    return _as_number(a, "multiply") * _as_number(b, "multiply")


def divide(context, a, b) -> Number:
    divisor = _as_number(b, "divide")
    if divisor == 0:
        raise DivisionByZeroError()
    return _as_number(a, "divide") / divisor


def load(context, file_path=None) -> str:
    if not file_path or not isinstance(file_path, str):
        raise FunctionCallError("Invalid file path")
    content = context.file_cache.read(context.options.resolve_path(file_path))
    return format_file_block(file_path, content)


def load_dir(context, dir_path=None, ignore_patterns=None) -> str:
    if not dir_path or not isinstance(dir_path, str):
        raise FunctionCallError("Invalid directory path")
    if ignore_patterns is not None and not isinstance(ignore_patterns, str):
        raise FunctionCallError("loadDir() expects ignore patterns as a comma separated string.")
    # an explicit argument replaces the configured patterns.
    patterns = split_comma_list(ignore_patterns) if ignore_patterns is not None else context.options.ignore_patterns
    contents = load_directory_contents(
        context.options.resolve_path(dir_path),
        extensions=context.options.file_extensions,
        ignore_patterns=patterns,
        label_root=dir_path,
    )
    return "".join(format_file_block(label, content) for label, content in contents.items())


async def img(context, source=None) -> str:
    if not isinstance(source, str):
        raise FunctionCallError("img() expects a string parameter.")
    if _WEB_URL_RE.match(source):
        url = source
    else:
        data, image_format = await asyncio.to_thread(
            encode_local_image_as_base64, context.options.resolve_path(source)
        )
        url = f"data:image/{image_format};base64,{data}"
    context.attachments.append({"type": "image_url", "image_url": {"url": url}})
    log.info("image_attachment_added", source=source)
    return IMAGE_PLACEHOLDER


BUILTIN_FUNCTIONS: Dict[str, Any] = {
    "add": add,
    "subtract": subtract,
    "multiply": multiply,
    "divide": divide,
    "load": load,
    "loadDir": load_dir,
    "img": img,
}
