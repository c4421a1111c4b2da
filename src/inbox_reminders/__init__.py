"""Turn rule-matched emails into Apple Reminders."""

__version__ = "0.1.0"
