"""Node identity and network configuration resolver for bare-metal control planes."""

__version__ = "0.3.0"
