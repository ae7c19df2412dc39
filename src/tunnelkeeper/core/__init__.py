"""Core infrastructure: logging, configuration, errors and constants."""
