"""Pytest configuration and shared fixtures."""

pytest_plugins = [
    "tests.fixtures.transport",
]
