"""
Advisory token and cost estimation.

Token counts are approximated from character counts (~4 characters per token)
and priced with a per-model table. The figures feed the AI usage ledger for
cost accounting; they are not billing-accurate.
"""

from __future__ import annotations

import math

# Mixed input/output USD price per token.
COST_PER_TOKEN = {
    "gpt-4o-mini": 0.15 / 1_000_000,
    "gpt-4.1-mini": 0.40 / 1_000_000,
    "gpt-4o": 2.50 / 1_000_000,
}
DEFAULT_COST_PER_TOKEN = COST_PER_TOKEN["gpt-4o"]

CHARS_PER_TOKEN = 4
MEDIA_CHAR_ALLOWANCE = 4000


def estimate_tokens(prompt: str, response: str, has_media: bool = False) -> int:
    chars = len(prompt or "") + len(response or "")
    if has_media:
        chars += MEDIA_CHAR_ALLOWANCE
    return int(math.ceil(chars / CHARS_PER_TOKEN))


def estimate_cost(model: str, tokens: int) -> float:
    if tokens <= 0:
        return 0.0
    return tokens * COST_PER_TOKEN.get(str(model), DEFAULT_COST_PER_TOKEN)
