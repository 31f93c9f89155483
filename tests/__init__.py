"""Burn Bridge test suite."""
