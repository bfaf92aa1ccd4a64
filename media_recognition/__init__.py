"""Asynchronous media recognition jobs and authenticated completion webhooks."""

__version__ = "0.1.0"
