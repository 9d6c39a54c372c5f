"""Event-driven AWS NAT gateway connector."""

__version__ = "1.0.0"
