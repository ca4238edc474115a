"""CoachSmith: natural-language questions answered from tenant-scoped SQL data."""

__version__ = "0.1.0"
