"""Credit-metered summarization pipeline."""

__version__ = "1.0.0"
