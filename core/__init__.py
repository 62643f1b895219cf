"""Shared infrastructure: logging, metrics and configuration."""
