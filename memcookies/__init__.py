"""Encrypted in-memory cookie bundles for cookies-disabled web clients."""

__version__ = "0.1.0"
