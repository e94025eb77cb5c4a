"""Query Claude Code data files (history, transcripts, todos, stats) with SQL."""

__version__ = "0.1.2"
__all__ = ["__version__"]