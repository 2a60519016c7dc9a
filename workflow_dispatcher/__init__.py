"""Dispatch and monitor GitHub Actions workflows from webhook events."""

__version__ = "1.0.0"
