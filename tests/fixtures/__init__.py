"""Test fixtures for the API client.

- transport: Scripted transports, recording sleep, fake clock and client factory
"""
