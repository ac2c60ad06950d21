"""Convene test suite."""
