"""promptgate: LLM parameter sanitizing and multi-vendor prompt orchestration."""

__version__ = "0.1.0"
