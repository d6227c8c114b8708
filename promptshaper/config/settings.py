from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union
import structlog

log = structlog.get_logger(__name__)

DEFAULT_ENCODING = "cl100k_base"

def split_comma_list(value: Union[str, List[str], tuple, None]) -> List[str]:
    # accepts "a, b" or ["a", "b"]; blank entries are dropped.
    if not value:
        return []
    items = value.split(",") if isinstance(value, str) else [part for item in value for part in str(item).split(",")]
    return [item.strip() for item in items if item.strip()]

class TokenCountFormat(Enum):
    # how the token count is printed on stderr.
    RAW = "raw"
    HUMAN = "human"

    @classmethod
    def from_string(cls, s: Optional[str]) -> Optional["TokenCountFormat"]:
        if not s:
            return None
        try:
            return cls(s.lower())
        except ValueError:
            log.warning("invalid_token_count_format_string", input_string=s)
            return None

@dataclass
class RenderOptions:
    # options visible to the renderer and to built-in functions.
    return_parser_matches: bool = False
    show_debug_messages: bool = False
    file_extensions: List[str] = field(default_factory=list)
    ignore_patterns: List[str] = field(default_factory=list)
    base_dir: Optional[Path] = None

    def __post_init__(self):
        self.file_extensions = [
            ext if ext.startswith(".") else f".{ext}" for ext in split_comma_list(self.file_extensions)
        ]
        self.ignore_patterns = split_comma_list(self.ignore_patterns)
        self.base_dir = Path(self.base_dir).resolve() if self.base_dir else Path.cwd().resolve()

    def resolve_path(self, path: Union[str, Path]) -> Path:
        # relative paths in templates are relative to base_dir.
        candidate = Path(path).expanduser()
        return candidate if candidate.is_absolute() else self.base_dir / candidate

@dataclass
class CliConfig:
    # holds all configuration parameters for a single cli run.
    template_path: Optional[Path] = None
    template_string: Optional[str] = None
    user_vars: Dict[str, str] = field(default_factory=dict)
    file_extensions: List[str] = field(default_factory=list)
    ignore_patterns: List[str] = field(default_factory=list)
    raw: bool = False
    show_matches: bool = False
    debug: bool = False
    output_file: Optional[Path] = None
    clipboard: bool = False
    show_tokens_format: Optional[TokenCountFormat] = None
    encoding: str = DEFAULT_ENCODING

    def render_options(self) -> RenderOptions:
        base_dir = self.template_path.resolve().parent if self.template_path else None
        return RenderOptions(
            return_parser_matches=self.show_matches,
            show_debug_messages=self.debug,
            file_extensions=list(self.file_extensions),
            ignore_patterns=list(self.ignore_patterns),
            base_dir=base_dir,
        )
