"""Operator console for a teleoperated search-and-rescue robot."""

__version__ = "0.1.0"
