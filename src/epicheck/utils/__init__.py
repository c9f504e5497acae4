"""Shared helpers: logging, configuration files, terminal output, session storage."""
