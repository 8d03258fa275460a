"""Usage quota accounting service for AI-assisted exercises."""

__version__ = "0.1.0"
