"""Keystore: encrypted secret and API key storage."""

__version__ = "0.1.0"
