"""Shared fixtures for pigpio client tests."""

import socket

import pytest


@pytest.fixture
def free_port():
    """A localhost port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
