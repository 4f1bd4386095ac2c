"""AI agent detection based on the User-Agent header."""

from typing import Iterable, Optional


def is_ai_agent(user_agent: Optional[str], patterns: Iterable[str]) -> bool:
    """Return True if any lowercase *patterns* entry occurs in *user_agent*."""
    if not user_agent:
        return False
    lowered = user_agent.lower()
    return any(pattern in lowered for pattern in patterns)
