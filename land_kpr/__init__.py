"""Land booking and KPR financing core."""

__version__ = "0.1.0"
