"""Credential lifecycle synchronization for delegated page tokens."""

__version__ = "0.1.0"
