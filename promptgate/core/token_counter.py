"""
Token counting and usage tracking.

Canonical token counts shared by every vendor adapter.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts as reported by the vendor.
    """
    prompt_tokens: int
    completion_tokens: int

    def __post_init__(self):
        """Validate token counts are non-negative."""
        if self.prompt_tokens < 0:
            raise ValueError("prompt_tokens cannot be negative")
        if self.completion_tokens < 0:
            raise ValueError("completion_tokens cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class TokenCounts:
    """Token counts in the canonical provider response shape.

    ``total`` is carried as reported by the vendor, which may include
    reasoning tokens not broken out into prompt/completion.
    """
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def as_usage(self) -> TokenUsage:
        """Convert to a TokenUsage for pricing."""
        return TokenUsage(prompt_tokens=self.prompt, completion_tokens=self.completion)


def coerce_token_count(value) -> int:
    """Coerce a vendor-reported token count to a non-negative int.

    Missing or malformed counts become 0.
    """
    if isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)
