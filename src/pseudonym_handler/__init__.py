"""Pseudonym Handler - client-side pseudonymization driver for a record-linkage service."""

__version__ = "0.1.0"
