"""Nemea monitoring agent: remotely configured DNS and reachability checks."""

__version__ = "0.1.0"
