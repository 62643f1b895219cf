"""Operator command line tools."""
