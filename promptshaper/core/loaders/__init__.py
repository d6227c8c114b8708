# promptshaper/core/loaders/__init__.py
from promptshaper.core.loaders.directory import load_directory_contents
from promptshaper.core.loaders.files import FileCache, format_file_block
from promptshaper.core.loaders.images import encode_local_image_as_base64

__all__ = ["FileCache", "encode_local_image_as_base64", "format_file_block", "load_directory_contents"]
