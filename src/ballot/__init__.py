"""Single-organizer ballot workflow."""

__version__ = "0.1.0"
