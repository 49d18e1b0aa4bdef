"""crane: watches one branch, builds new commits, reports GitHub statuses."""

__version__ = "0.1.0"
