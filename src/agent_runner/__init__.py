"""Sandbox-side session runner for long-lived agent conversations."""

__version__ = "0.1.0"
