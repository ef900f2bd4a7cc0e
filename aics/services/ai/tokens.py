"""
Token and cost estimation.

Exact counts need the vendor tokenizer; dashboards only need an estimate that
grows with the text. Hangul packs more meaning per character than Latin text,
so it is weighted separately:

- Hangul syllables / jamo: ~1.5 characters per token
- everything else:        ~4 characters per token

Cost uses flat per-million-token rates, output priced higher than input.
"""
import math
import re

DENSE_CHARS_PER_TOKEN = 1.5
OTHER_CHARS_PER_TOKEN = 4.0

INPUT_COST_PER_MTOK_USD = 3.0
OUTPUT_COST_PER_MTOK_USD = 15.0

# Hangul syllables, Hangul jamo, Hangul compatibility jamo
_DENSE_SCRIPT_RE = re.compile("[\uac00-\ud7af\u1100-\u11ff\u3130-\u318f]")


def estimate_tokens(text: str) -> int:
    """Approximate token count of ``text`` (0 for empty input)."""
    if not text:
        return 0

    dense = len(_DENSE_SCRIPT_RE.findall(text))
    other = len(text) - dense

    return math.ceil(dense / DENSE_CHARS_PER_TOKEN) + math.ceil(other / OTHER_CHARS_PER_TOKEN)


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost, rounded to 6 decimal places."""
    input_cost = (input_tokens / 1_000_000) * INPUT_COST_PER_MTOK_USD
    output_cost = (output_tokens / 1_000_000) * OUTPUT_COST_PER_MTOK_USD
    return round(input_cost + output_cost, 6)
