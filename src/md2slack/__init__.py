"""md2slack: daily status reports from the day's commits."""

__version__ = "0.1.0"
