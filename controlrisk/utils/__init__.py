"""Shared utilities: configuration, logging and error handling."""
