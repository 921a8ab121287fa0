"""Rough LLM cost estimates for evaluation results."""

from __future__ import annotations

# USD per 1k total tokens
COST_PER_1K_TOKENS = {
    "gpt-4o": 0.03,
    "gpt-4o-mini": 0.0015,
    "gpt-3.5-turbo": 0.002,
}
DEFAULT_COST_PER_1K_TOKENS = 0.002


def estimate_cost(total_tokens: int, model: str) -> float:
    if not total_tokens:
        return 0.0
    rate = COST_PER_1K_TOKENS.get(model, DEFAULT_COST_PER_1K_TOKENS)
    return (total_tokens / 1000) * rate
