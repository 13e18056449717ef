"""Company identity resolution and hiring-pain signal engine."""

__version__ = "0.1.0"
