"""Oblivious DNS-over-HTTPS (RFC 9230) relay."""

__version__ = "1.0.0"
