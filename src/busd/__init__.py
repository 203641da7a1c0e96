"""busd: message bus daemon bootstrap."""

__version__ = "0.1.0"
