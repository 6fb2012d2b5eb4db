"""
Pricing calculations.

Converts token usage and per-model pricing into a cost breakdown.
"""

from dataclasses import dataclass

from .token_counter import TokenUsage

TOKENS_PER_UNIT = 1_000_000


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    prompt_per_million: float  # Cost per 1M prompt tokens
    completion_per_million: float  # Cost per 1M completion tokens

    def __post_init__(self):
        """Validate prices are non-negative."""
        if self.prompt_per_million < 0:
            raise ValueError("prompt_per_million cannot be negative")
        if self.completion_per_million < 0:
            raise ValueError("completion_per_million cannot be negative")


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of a single run, split by token kind."""
    prompt: float
    completion: float
    total: float

    @classmethod
    def zero(cls) -> "CostBreakdown":
        return cls(prompt=0.0, completion=0.0, total=0.0)


def compute_cost(tokens: TokenUsage, pricing: ModelPricing) -> CostBreakdown:
    """Calculate the cost of a run.

    Pure and deterministic; no rounding is applied so that charges can be
    summed without drift.

    Args:
        tokens: Token usage reported by the vendor
        pricing: Per-million token prices of the model

    Returns:
        CostBreakdown with prompt, completion and total cost
    """
    # Calculate prompt cost: (tokens / 1M) * cost_per_1M
    prompt_cost = tokens.prompt_tokens / TOKENS_PER_UNIT * pricing.prompt_per_million

    # Calculate completion cost: (tokens / 1M) * cost_per_1M
    completion_cost = tokens.completion_tokens / TOKENS_PER_UNIT * pricing.completion_per_million

    return CostBreakdown(
        prompt=prompt_cost,
        completion=completion_cost,
        total=prompt_cost + completion_cost
    )
