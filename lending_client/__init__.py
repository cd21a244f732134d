"""Client-side risk engine and transaction orchestrator for a private lending protocol."""
__version__ = "0.1.0"
