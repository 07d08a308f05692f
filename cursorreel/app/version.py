"""Single source of truth for the CursorReel version string."""

__version__ = "0.3.0"
