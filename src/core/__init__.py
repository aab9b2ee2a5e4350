"""Core configuration, errors, and shared clients."""
