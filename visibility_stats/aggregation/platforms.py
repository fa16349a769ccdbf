"""Public platform identifiers and their storage names."""

from __future__ import annotations

PLATFORM_ALIASES: dict[str, str] = {
    "chatgpt": "openai",
    "openai": "openai",
    "anthropic": "claude",
    "claude": "claude",
    "gemini": "gemini",
    "perplexity": "perplexity",
}


def normalize_platform(value: str) -> str:
    """Map a public platform name to the value stored on ai_responses."""
    key = value.strip().lower()
    return PLATFORM_ALIASES.get(key, key)
