"""Legacy identity federation and token bridge."""

__version__ = "0.1.0"
