"""DocChat: session-scoped storage for images extracted from documents."""

__version__ = "0.1.0"
