# promptshaper/core/tokens.py
import tiktoken  # type: ignore
import structlog

from promptshaper.exceptions import TokenizerError

log = structlog.get_logger(__name__)

def count_tokens(text: str, encoding: str) -> int:
    # counts tokens with the given tiktoken encoding; special tokens count as text.
    log.info("calculating_prompt_tokens", encoding=encoding)
    try:
        encoder = tiktoken.get_encoding(encoding)
        count = len(encoder.encode(text, disallowed_special=()))
    except Exception as e:
        raise TokenizerError(f"Token calculation failed for '{encoding}': {e}") from e
    log.info("token_calculation_complete", count=count)
    return count
