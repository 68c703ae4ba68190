"""Long-running agent loop over a prioritized user-story backlog."""

__version__ = "0.1.0"
