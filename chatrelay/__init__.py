"""chatrelay - live conversation sync and AI reply relay."""

__version__ = "1.0.0"
