"""Multi-agent chat orchestration core."""

__all__ = [
    "runtime",
]
