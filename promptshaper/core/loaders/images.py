# promptshaper/core/loaders/images.py
import base64
from pathlib import Path
from typing import Tuple

import structlog

from promptshaper.exceptions import LoaderError

log = structlog.get_logger(__name__)

IMAGE_FORMATS = {
    ".png": "png",
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".gif": "gif",
    ".webp": "webp",
}


def encode_local_image_as_base64(path: Path) -> Tuple[str, str]:
    # returns (base64 data, image format) for a local image file.
    path = Path(path)
    image_format = IMAGE_FORMATS.get(path.suffix.lower())
    if image_format is None:
        raise LoaderError(f"Unsupported image type '{path.suffix}' for {path}")
    if not path.is_file():
        raise LoaderError(f"Failed to load local file: {path}")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise LoaderError(f"Failed to load local file: {path}: {e}") from e
    log.debug("image_encoded", path=str(path), format=image_format, size=len(data))
    return base64.b64encode(data).decode("ascii"), image_format
