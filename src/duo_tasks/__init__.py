"""Two-person shared task list with live sync."""

__version__ = "0.1.0"
